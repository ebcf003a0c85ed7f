# init_db.py
from dotenv import load_dotenv

from database import setup_database_standalone


if __name__ == "__main__":
    load_dotenv()
    print("Initializing chapterwatch schema (sources, trackers)...")
    setup_database_standalone()
    print("Schema ready.")
