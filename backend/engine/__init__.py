"""
Empire's Legacy Combat Engine
Deterministic multi-round tactical-card combat, without UI, map or economy.
"""

# Round scoring
COUNTER_BONUS = 2  # shown on the countering side's score; the counter itself wins the round
TERRAIN_AFFINITY_BONUS = 1  # card terrain matches the defending terrain
UNIT_STRENGTH_DIVISOR = 5  # composite roster strength / divisor = score contribution
LEVEL_STRENGTH_BONUS = 0.10  # per level above 1

# Round casualties (percent of the side's force)
LOSER_BASE_CASUALTIES = 10
LOSER_CASUALTIES_PER_POINT = 5
LOSER_MAX_CASUALTIES = 30
WINNER_BASE_CASUALTIES = 15
WINNER_CASUALTIES_PER_POINT = 2
WINNER_MIN_CASUALTIES = 5
WINNER_CASUALTY_RATIO = 0.5  # winner never loses more than this share of the loser's casualties
DRAW_CASUALTIES = 10

# Territory control gained on victory
CONTROL_BASE_VICTORY = 30
CONTROL_PER_EXTRA_ROUND_WON = 20
CONTROL_CASUALTY_DIVISOR = 5
FULL_CONTROL = 100

# Aftermath applied to rosters when a combat is ended
MAX_AFTERMATH_DAMAGE = 20
EXPERIENCE_WIN = 15
EXPERIENCE_LOSS = 8
EXPERIENCE_PER_LEVEL = 100

# Inventory rules
MAX_ADVANCED_CARD_TYPES = 5
