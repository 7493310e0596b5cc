# pyocean/constants.py

"""
Physical constants and fixed option tables for the pyocean model.
"""

# --- Physical Constants (SI units) ---
GRAVITY = 9.80616  # Gravitational acceleration (m s^-2)
RHO_SW = 1026.0  # Reference seawater density (kg m^-3)
CP_SW = 3.996e3  # Specific heat of seawater (J kg^-1 K^-1)
RHO_FW = 1000.0  # Freshwater density (kg m^-3)
EARTH_RADIUS = 6_371_229.0  # Earth radius (m)
OMEGA = 7.29212e-5  # Earth rotation rate (rad/s)

SECONDS_PER_DAY = 86400.0

# --- Vertical coordinate and pressure gradient options ---
VERT_COORD_MOVEMENTS = (
    "fixed",
    "uniform_stretching",
    "impermeable_interfaces",
    "user_specified",
)

PRESSURE_GRADIENT_TYPES = (
    "pressure_and_zmid",
    "MontgomeryPotential",
)

TIME_INTEGRATORS = ("split_explicit",)

# --- Shortwave absorption (Paulson & Simpson 1977, Jerlov water types) ---
# type -> (R, zeta1 [m], zeta2 [m]); fraction remaining at depth z:
#   R * exp(-z/zeta1) + (1 - R) * exp(-z/zeta2)
JERLOV_WATER_TYPES = {
    1: (0.58, 0.35, 23.0),  # I
    2: (0.62, 0.60, 20.0),  # IA
    3: (0.67, 1.00, 17.0),  # IB
    4: (0.77, 1.50, 14.0),  # II
    5: (0.78, 1.40, 7.9),  # III
}

# --- Barotropic subcycling ---
MAX_BTR_SUBCYCLES = 500

# Depth used by the high-frequency output member for its "100 m" level
HIGH_FREQUENCY_TARGET_DEPTH = 100.0
