AMBIENT_TEMPERATURE = 25.0  # Celsius
EPSILON = 1e-9               # volumes below this are treated as empty
RESIDUE_THRESHOLD = 1e-6     # ml; entries left behind by a partial pour below this are pruned

# -----------------------
# Sandbox reactions
# -----------------------
REACTION_APPLY_DELAY_MS = 100
EFFECT_DURATION_MS = {
    "bubbles": 4000,
}
DEFAULT_EFFECT_DURATION_MS = 3000

# -----------------------
# Guided experiments
# -----------------------
ACTION_VOCABULARY = ("stir", "heat", "filter", "evaporate", "pour")
STIR_DURATION_MS = 4000
AUTO_EVAPORATE_DELAY_MS = 5000
COMPLETION_POPUP_DELAY_MS = 3000
HEAT_LEVEL_STEP = 30
HEAT_LEVEL_MAX = 100
ICE_MELT_WATER_RATIO = 0.4   # water left behind, as a fraction of the ice amount

# -----------------------
# Titration
# -----------------------
TITRATION_DROP_THRESHOLD = 5
TITRATION_DROP_INTERVAL_MS = 1200
TITRATION_EARLY_FADE = 0.04  # interpolation reached by the last drop before the endpoint
TITRATION_START_COLOR = "#ff69b4"
TITRATION_END_COLOR = "#f5f5f5"

# -----------------------
# Heating
# -----------------------
HEATING_RADIUS = 0.7
HEATING_RATE = 15.0          # degC per second at the source center
MAX_TEMPERATURE = 120.0
COOLING_RATE_NEAR = 3.0      # degC per second, burner on but vessel out of range
COOLING_RATE_OFF = 5.0       # degC per second, burner off
BOILING_POINT = 100.0
BOILING_COOLDOWN_MS = 5000
BOILING_EFFECT_MS = 5000
ICE_MELT_TEMPERATURE = 50.0
ICE_MELT_RATE = 0.125        # fraction per second
ICE_MELT_DONE = 0.95
ICE_MELT_CHECK_DELAY_MS = 500
DISH_CRACK_SECONDS = 5.0
SAFETY_WARNING_DELAY_MS = 2500

# -----------------------
# Filtration
# -----------------------
FILTRATION_RATE_POURING = 12.0   # ml per second while a pour is active
FILTRATION_RATE_IDLE = 20.0      # ml per second once pouring stops
FILTRATION_EMPTY_LEVEL = 0.1
FILTRATION_SOURCE_EMPTY = 5.0    # ml summed across source beakers
COLLECTION_BEAKER_ID = "collection_beaker"
COLLECTION_BEAKER_CAPACITY = 250.0

# -----------------------
# Data files
# -----------------------
DEFAULT_DATA_DIR = "data"
DEFAULT_PROGRESS_FILENAME = "completed_experiments.json"

# -----------------------
# Lab manager
# -----------------------
DEFAULT_TICK_SECONDS = 0.02
DEFAULT_EVENT_LOG_MAXLEN = 2000

# -----------------------
# Logging
# -----------------------
LOGGING_LEVEL = "INFO"  # options: DEBUG, INFO, WARNING, ERROR

# -----------------------
# Bench layout (scene units)
# -----------------------
HEAT_SOURCE_POSITION = (0.0, 0.0, 2.0)
STAND_POSITION = (0.0, 1.0, 2.0)       # vessels placed on the tripod stand
TONGS_POSITION = (0.0, 1.8, 2.0)
COLLECTION_BEAKER_POSITION = (3.5, 0.0, 0.0)
TONGS_BURN_CHECK_DELAY_MS = 3000

# -----------------------
# Guided apparatus
# -----------------------
UNIQUE_APPARATUS = ("funnel", "filter-paper", "tripod-stand", "burner", "beaker",
                    "glass-rod", "china-dish", "tongs")
VESSEL_APPARATUS = ("china-dish", "beaker", "test-tube")  # first one an experiment lists receives chemicals
GUIDED_BEAKER_CAPACITY = 250.0
GUIDED_TEST_TUBE_CAPACITY = 50.0
CHINA_DISH_CAPACITY = 100.0
TONGS_CAPACITY = 10.0
GUIDED_FILL_ML = {              # per receiving vessel kind
    "beaker": 100.0,
    "test_tube": 20.0,
    "china_dish": 60.0,
    "tongs": 10.0,
}
GUIDED_FILL_OVERRIDES_ML = {
    "muddy-water": 112.5,
}
GUIDED_CHECK_DELAY_MS = 100

# -----------------------
# Pouring
# -----------------------
POUR_THRESHOLD_ANGLE = 45.0     # degrees of tilt before liquid leaves the vessel
POUR_RATE_ML_S = 49.5           # at full tilt (threshold + 45 degrees)
AUTO_POUR_TILT = 90.0
