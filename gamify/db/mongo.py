# gamify/db/mongo.py
import os

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient

load_dotenv()

MONGO_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGODB_DB", "gamify")

client = AsyncIOMotorClient(MONGO_URL)
db = client[MONGO_DB_NAME]

# Collection names (the engine takes a database handle, so tests can swap it)
USERS = "users"
ACHIEVEMENTS = "achievements"
BADGES = "badges"
USER_ACHIEVEMENTS = "user_achievements"
USER_BADGES = "user_badges"
XP_TRANSACTIONS = "xp_transactions"
CHALLENGES = "challenges"
CHALLENGE_PARTICIPANTS = "challenge_participants"
LEARNING_GOALS = "learning_goals"
NOTIFICATIONS = "notifications"

# Activity collections, owned by the course/social services
SUBMISSIONS = "submissions"
PROJECTS = "projects"
POSTS = "posts"
COMMENTS = "comments"
COURSES = "courses"
ASSIGNMENTS = "assignments"


def get_database():
    return db


# Call this once at startup to ensure indexes exist.
async def init_db_indexes(database=None) -> None:
    database = database if database is not None else db

    # Unlock ledgers: at most one record per (user, reward). This is the race guard.
    await database[USER_ACHIEVEMENTS].create_index(
        [("user_id", 1), ("achievement_id", 1)],
        unique=True,
        name="user_achievement_unique",
    )
    await database[USER_ACHIEVEMENTS].create_index([("user_id", 1), ("unlocked_at", -1)])
    await database[USER_BADGES].create_index(
        [("user_id", 1), ("badge_id", 1)],
        unique=True,
        name="user_badge_unique",
    )
    await database[USER_BADGES].create_index([("user_id", 1), ("unlocked_at", -1)])

    # Catalogs are scanned by criteria type on every trigger
    await database[ACHIEVEMENTS].create_index([("is_active", 1), ("unlock_criteria.type", 1)])
    await database[BADGES].create_index([("is_active", 1), ("unlock_criteria.type", 1)])

    # XP ledger
    await database[XP_TRANSACTIONS].create_index([("user_id", 1), ("created_at", -1)])
    await database[XP_TRANSACTIONS].create_index("source")
    await database[USERS].create_index([("xp", -1), ("_id", 1)])
    await database[USERS].create_index([("level", -1), ("xp", -1)])

    # Challenges
    await database[CHALLENGES].create_index([("status", 1), ("start_date", 1), ("end_date", 1)])
    await database[CHALLENGES].create_index([("type", 1), ("status", 1)])
    await database[CHALLENGE_PARTICIPANTS].create_index(
        [("challenge_id", 1), ("user_id", 1)],
        unique=True,
        name="challenge_user_unique",
    )
    await database[CHALLENGE_PARTICIPANTS].create_index([("challenge_id", 1), ("rank", 1)])
    await database[CHALLENGE_PARTICIPANTS].create_index([("user_id", 1), ("is_completed", 1)])

    # Goals
    await database[LEARNING_GOALS].create_index([("user_id", 1), ("status", 1)])
    await database[LEARNING_GOALS].create_index([("status", 1), ("deadline", 1)])

    await database[NOTIFICATIONS].create_index([("user_id", 1), ("created_at", -1)])
