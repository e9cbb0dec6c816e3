"""
Single place for default game/combat configuration.
Change DEFAULT_SETUP_ID to switch which setup is used when creating a new game (when no setup_id is provided).
"""
# Setup id from data/setups/<id>/ (e.g. "0.1"). This is the default for new games.
DEFAULT_SETUP_ID = "0.1"

# Rounds fought per combat session (fixed at session creation).
DEFAULT_TOTAL_ROUNDS = 3

# Side id used for the human player when a game is created without one.
DEFAULT_PLAYER_ID = "player"
