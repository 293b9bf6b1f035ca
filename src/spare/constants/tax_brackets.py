"""Reference tax data seeded into the database.

Brackets are ``(min_income, max_income, rate)``; ``None`` as max marks the top
bracket. Regional rates are flat effective rates.
"""

FEDERAL_BRACKETS = {
    ("US", 2024): [
        (0, 11600, 0.10),
        (11600, 47150, 0.12),
        (47150, 100525, 0.22),
        (100525, 191950, 0.24),
        (191950, 243725, 0.32),
        (243725, 609350, 0.35),
        (609350, None, 0.37),
    ],
    ("CA", 2024): [
        (0, 55867, 0.15),
        (55867, 111733, 0.205),
        (111733, 173205, 0.26),
        (173205, 246752, 0.29),
        (246752, None, 0.33),
    ],
    ("CA", 2025): [
        (0, 57375, 0.145),
        (57375, 114750, 0.205),
        (114750, 177882, 0.26),
        (177882, 253414, 0.29),
        (253414, None, 0.33),
    ],
}

US_STATE_RATES = {
    "AL": ("Alabama", 0.05),
    "AK": ("Alaska", 0.0),
    "AZ": ("Arizona", 0.025),
    "AR": ("Arkansas", 0.055),
    "CA": ("California", 0.133),
    "CO": ("Colorado", 0.044),
    "CT": ("Connecticut", 0.06),
    "DE": ("Delaware", 0.066),
    "FL": ("Florida", 0.0),
    "GA": ("Georgia", 0.0575),
    "HI": ("Hawaii", 0.11),
    "ID": ("Idaho", 0.06),
    "IL": ("Illinois", 0.0495),
    "IN": ("Indiana", 0.0323),
    "IA": ("Iowa", 0.06),
    "KS": ("Kansas", 0.057),
    "KY": ("Kentucky", 0.05),
    "LA": ("Louisiana", 0.06),
    "ME": ("Maine", 0.075),
    "MD": ("Maryland", 0.0575),
    "MA": ("Massachusetts", 0.05),
    "MI": ("Michigan", 0.0425),
    "MN": ("Minnesota", 0.095),
    "MS": ("Mississippi", 0.05),
    "MO": ("Missouri", 0.054),
    "MT": ("Montana", 0.0675),
    "NE": ("Nebraska", 0.0684),
    "NV": ("Nevada", 0.0),
    "NH": ("New Hampshire", 0.0),
    "NJ": ("New Jersey", 0.106),
    "NM": ("New Mexico", 0.059),
    "NY": ("New York", 0.109),
    "NC": ("North Carolina", 0.0525),
    "ND": ("North Dakota", 0.029),
    "OH": ("Ohio", 0.0399),
    "OK": ("Oklahoma", 0.05),
    "OR": ("Oregon", 0.099),
    "PA": ("Pennsylvania", 0.0307),
    "RI": ("Rhode Island", 0.0599),
    "SC": ("South Carolina", 0.07),
    "SD": ("South Dakota", 0.0),
    "TN": ("Tennessee", 0.0),
    "TX": ("Texas", 0.0),
    "UT": ("Utah", 0.0485),
    "VT": ("Vermont", 0.0875),
    "VA": ("Virginia", 0.0575),
    "WA": ("Washington", 0.0),
    "WV": ("West Virginia", 0.065),
    "WI": ("Wisconsin", 0.0765),
    "WY": ("Wyoming", 0.0),
    "DC": ("District of Columbia", 0.1075),
}

CANADA_PROVINCIAL_RATES = {
    "AB": ("Alberta", 0.10),
    "BC": ("British Columbia", 0.1205),
    "MB": ("Manitoba", 0.1275),
    "NB": ("New Brunswick", 0.1394),
    "NL": ("Newfoundland and Labrador", 0.1287),
    "NS": ("Nova Scotia", 0.1479),
    "NT": ("Northwest Territories", 0.059),
    "NU": ("Nunavut", 0.04),
    "ON": ("Ontario", 0.0933),
    "PE": ("Prince Edward Island", 0.098),
    "QC": ("Quebec", 0.14),
    "SK": ("Saskatchewan", 0.105),
    "YT": ("Yukon", 0.064),
}

REGIONAL_RATES = {"US": US_STATE_RATES, "CA": CANADA_PROVINCIAL_RATES}
