"""
Default system taxonomy seeded on first start, plus the mapping of groups to
budget-rule buckets.
"""

SYSTEM_CATEGORY_GROUPS = [
    {
        "name": "Income",
        "type": "income",
        "categories": {
            "Salary": ["Payroll", "Bonus", "Commission"],
            "Business Income": ["Freelance", "Side Hustle"],
            "Investment Income": ["Dividends", "Interest", "Capital Gains"],
            "Other Income": ["Refund", "Reimbursement", "Gift Received", "Tax Refund"],
        },
    },
    {
        "name": "Housing",
        "type": "expense",
        "categories": {
            "Rent": [],
            "Mortgage": [],
            "Home Maintenance": ["Repairs", "Furniture"],
            "Property Tax": [],
        },
    },
    {
        "name": "Utilities",
        "type": "expense",
        "categories": {
            "Electricity": [],
            "Water": [],
            "Gas": [],
            "Internet": [],
            "Phone": [],
        },
    },
    {
        "name": "Food",
        "type": "expense",
        "categories": {
            "Groceries": [],
            "Restaurants": ["Coffee", "Fast Food", "Delivery"],
        },
    },
    {
        "name": "Transportation",
        "type": "expense",
        "categories": {
            "Fuel": [],
            "Public Transit": [],
            "Car Maintenance": [],
            "Parking": [],
            "Rideshare": [],
        },
    },
    {
        "name": "Health",
        "type": "expense",
        "categories": {
            "Medical": ["Doctor", "Dentist", "Pharmacy"],
            "Fitness": ["Gym"],
        },
    },
    {
        "name": "Insurance",
        "type": "expense",
        "categories": {
            "Health Insurance": [],
            "Car Insurance": [],
            "Home Insurance": [],
            "Life Insurance": [],
        },
    },
    {
        "name": "Debt Payments",
        "type": "expense",
        "categories": {
            "Credit Card Payment": [],
            "Loan Payment": [],
        },
    },
    {
        "name": "Shopping",
        "type": "expense",
        "categories": {
            "Clothing": [],
            "Electronics": [],
            "Household Supplies": [],
        },
    },
    {
        "name": "Entertainment",
        "type": "expense",
        "categories": {
            "Streaming": [],
            "Events": [],
            "Hobbies": [],
        },
    },
    {
        "name": "Personal Care",
        "type": "expense",
        "categories": {
            "Hair & Beauty": [],
            "Childcare": [],
            "Pets": [],
        },
    },
    {
        "name": "Education",
        "type": "expense",
        "categories": {"Tuition": [], "Books & Courses": []},
    },
    {
        "name": "Travel",
        "type": "expense",
        "categories": {"Flights": [], "Lodging": [], "Vacation": []},
    },
    {
        "name": "Gifts & Donations",
        "type": "expense",
        "categories": {"Gifts": [], "Charity": []},
    },
    {
        "name": "Savings & Investments",
        "type": "expense",
        "categories": {"Emergency Fund": [], "Retirement": [], "Investments": []},
    },
    {
        "name": "Miscellaneous",
        "type": "expense",
        "categories": {"Fees & Charges": ["Bank Fees", "Interest Charges"], "Other": []},
    },
]

# Budget rule bucket -> system group names counted in that bucket.
RULE_BUCKET_GROUPS = {
    "needs": ["Housing", "Utilities", "Food", "Transportation", "Health", "Insurance", "Debt Payments"],
    "housing": ["Housing", "Utilities"],
    "other_needs": ["Food", "Transportation", "Health", "Insurance", "Debt Payments"],
    "lifestyle": [
        "Shopping",
        "Entertainment",
        "Personal Care",
        "Education",
        "Travel",
        "Gifts & Donations",
        "Miscellaneous",
    ],
    "future": ["Savings & Investments"],
}
