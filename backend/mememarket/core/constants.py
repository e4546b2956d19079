"""
Static game tables shared by the market, odds, ledger and staking services.
"""

# Popularity multiplier per subreddit (lowercase keys)
SUBREDDIT_MULTIPLIERS = {
    "memes": 1.3,
    "programmerhumor": 1.4,
    "gaming": 1.2,
    "cats": 1.3,
    "askreddit": 1.5,
    "todayilearned": 1.4,
    "nextfuckinglevel": 1.6,
    "interestingasfuck": 1.5,
    "wtf": 1.2,
    "politics": 1.1,
    "funny": 1.2,
    "aww": 1.4,
    "news": 1.1,
}

# Sector rotation order matters: rotate_sector walks this list cyclically
MARKET_SECTORS = [
    {
        "id": "cats",
        "name": "Cat Memes",
        "description": "Everything feline and adorable",
        "multiplier": 1.2,
        "keywords": ["cat", "kitten", "feline", "meow"],
    },
    {
        "id": "politics",
        "name": "Political Satire",
        "description": "When politics meets memes",
        "multiplier": 1.5,
        "keywords": ["politics", "government", "election", "policy"],
    },
    {
        "id": "gaming",
        "name": "Gaming Culture",
        "description": "Epic gaming moments and fails",
        "multiplier": 1.3,
        "keywords": ["game", "gaming", "esports", "streamer"],
    },
    {
        "id": "food",
        "name": "Food & Cooking",
        "description": "Mouthwatering food content",
        "multiplier": 1.1,
        "keywords": ["food", "cooking", "recipe", "delicious"],
    },
    {
        "id": "wtf",
        "name": "WTF Moments",
        "description": "Mind-blowing and bizarre content",
        "multiplier": 1.8,
        "keywords": ["wtf", "crazy", "weird", "insane"],
    },
]

PREDICTION_TYPES = {
    "growth_rate": {"name": "Growth Rate", "base_odds": 2.0, "difficulty": "medium"},
    "milestone_reach": {"name": "Milestone Reach", "base_odds": 1.8, "difficulty": "medium"},
    "ranking_position": {"name": "Ranking Position", "base_odds": 3.0, "difficulty": "hard"},
    "engagement_ratio": {"name": "Engagement Ratio", "base_odds": 2.5, "difficulty": "hard"},
    "virality_index": {"name": "Virality Index", "base_odds": 4.0, "difficulty": "expert"},
}

PREDICTION_TIMEFRAMES = {
    "SHORT": {"hours": 6, "volatility": 1.2, "base_multiplier": 1.5},
    "MEDIUM": {"hours": 12, "volatility": 1.0, "base_multiplier": 1.2},
    "LONG": {"hours": 24, "volatility": 0.8, "base_multiplier": 1.0},
    "EXTENDED": {"hours": 48, "volatility": 0.6, "base_multiplier": 0.8},
}

# (upper bound in hours, factor); the last bucket is open-ended
POST_AGE_VOLATILITY = [
    (1, 1.0),
    (3, 0.8),
    (6, 0.6),
    (12, 0.4),
    (24, 0.3),
    (float("inf"), 0.2),
]

# (upper bound rank, factor)
RANKING_VOLATILITY = [
    (5, 0.9),
    (20, 0.7),
    (50, 0.5),
    (float("inf"), 0.3),
]

TIME_OF_DAY_VOLATILITY = {
    "peak": 1.2,
    "normal": 1.0,
    "quiet": 0.8,
}

LEVELS = [
    {"level": 1, "experience": 0, "title": "Market Newbie"},
    {"level": 2, "experience": 100, "title": "Trend Spotter"},
    {"level": 3, "experience": 250, "title": "Market Analyst"},
    {"level": 4, "experience": 500, "title": "Prediction Pro"},
    {"level": 5, "experience": 1000, "title": "Meme Lord"},
    {"level": 6, "experience": 2000, "title": "Market Wizard"},
    {"level": 7, "experience": 3500, "title": "Reddit Oracle"},
    {"level": 8, "experience": 5000, "title": "Legendary Trader"},
    {"level": 9, "experience": 7500, "title": "Meme Market God"},
    {"level": 10, "experience": 10000, "title": "Supreme Predictor"},
]

# Rewards are expressed in MemeCoins
ACHIEVEMENTS = {
    "first_trade": {
        "name": "First Trade",
        "description": "Made your first prediction",
        "rarity": "common",
        "reward": 100,
    },
    "winning_streak": {
        "name": "On Fire",
        "description": "Won 5 predictions in a row",
        "rarity": "rare",
        "reward": 200,
    },
    "high_roller": {
        "name": "High Roller",
        "description": "Bet 1000 MemeCoins or more in a single prediction",
        "rarity": "epic",
        "reward": 300,
    },
    "perfect_predictor": {
        "name": "Perfect Predictor",
        "description": "Got 10 predictions right in a row",
        "rarity": "legendary",
        "reward": 500,
    },
    "market_veteran": {
        "name": "Market Veteran",
        "description": "Placed 100 predictions",
        "rarity": "epic",
        "reward": 400,
    },
}

STAKING_TIERS = [
    {"name": "Bronze Staker", "min_amount": 0.0, "max_amount": 999.0, "apr": 5.0},
    {"name": "Silver Staker", "min_amount": 1000.0, "max_amount": 4999.0, "apr": 8.5},
    {"name": "Gold Staker", "min_amount": 5000.0, "max_amount": 9999.0, "apr": 12.0},
    {"name": "Diamond Staker", "min_amount": 10000.0, "max_amount": float("inf"), "apr": 15.0},
]
