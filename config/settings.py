"""
Configuration settings for the Course Relevancy Ranker
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / '.env')

# OpenAI Configuration (absent key = oracle unavailable, sentinel ranks are used)
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
RANKER_MODEL = os.getenv('RANKER_MODEL', 'gpt-4o-mini')
RANKER_TEMPERATURE = float(os.getenv('RANKER_TEMPERATURE', '0.3'))
RANKER_MAX_TOKENS = int(os.getenv('RANKER_MAX_TOKENS', '8000'))
ORACLE_TIMEOUT_SECONDS = float(os.getenv('ORACLE_TIMEOUT_SECONDS', '60'))

# Database Configuration
DATABASE_URL = os.getenv('DATABASE_URL')

# Ranking Configuration
RANK_SENTINEL = int(os.getenv('RANK_SENTINEL', '999'))
COMPARISON_LIMIT = int(os.getenv('COMPARISON_LIMIT', '20'))
COMPARISON_MIN_UPPER_BOUND = int(os.getenv('COMPARISON_MIN_UPPER_BOUND', '100'))
BULK_DESCRIPTION_CHARS = int(os.getenv('BULK_DESCRIPTION_CHARS', '200'))
NEW_COURSE_DESCRIPTION_CHARS = int(os.getenv('NEW_COURSE_DESCRIPTION_CHARS', '300'))
REFERENCE_DESCRIPTION_CHARS = int(os.getenv('REFERENCE_DESCRIPTION_CHARS', '150'))
BULK_WARN_CANDIDATES = int(os.getenv('BULK_WARN_CANDIDATES', '150'))

# Rate Control
RANK_CHUNK_SIZE = int(os.getenv('RANK_CHUNK_SIZE', '10'))
RANK_CHUNK_MAX_RETRIES = int(os.getenv('RANK_CHUNK_MAX_RETRIES', '2'))
ORACLE_MAX_RETRIES = int(os.getenv('ORACLE_MAX_RETRIES', '3'))
ORACLE_BACKOFF_MIN_SECONDS = float(os.getenv('ORACLE_BACKOFF_MIN_SECONDS', '1'))
ORACLE_BACKOFF_MAX_SECONDS = float(os.getenv('ORACLE_BACKOFF_MAX_SECONDS', '30'))
CATEGORY_DELAY_SECONDS = float(os.getenv('CATEGORY_DELAY_SECONDS', '2'))

# Categories
CATEGORIES_CONFIG_PATH = BASE_DIR / os.getenv('CATEGORIES_CONFIG_PATH', 'config/categories.yml')

# Celery
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://redis:6379/1')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', 'redis://redis:6379/2')

# Logging Configuration
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_DIR = BASE_DIR / os.getenv('LOG_DIR', 'logs')
LOG_RETENTION_DAYS = int(os.getenv('LOG_RETENTION_DAYS', '14'))
TOKEN_TRACKER_ENABLE_CSV = os.getenv('TOKEN_TRACKER_ENABLE_CSV', 'false').lower() in ('1', 'true', 'yes', 'on')


# Validation
def validate_config(require_oracle: bool = False):
    """Validate that all required configuration is present"""
    errors = []

    if require_oracle and not OPENAI_API_KEY:
        errors.append("OPENAI_API_KEY is not set in .env file")

    if not DATABASE_URL:
        errors.append("DATABASE_URL is not set in .env file")

    if not CATEGORIES_CONFIG_PATH.exists():
        errors.append(f"Categories config not found at {CATEGORIES_CONFIG_PATH}")

    if RANK_CHUNK_SIZE < 1:
        errors.append(f"RANK_CHUNK_SIZE must be >= 1 (got {RANK_CHUNK_SIZE})")

    if RANK_SENTINEL < 1:
        errors.append(f"RANK_SENTINEL must be >= 1 (got {RANK_SENTINEL})")

    if errors:
        raise ValueError("Configuration errors:\n" + "\n".join(f"- {e}" for e in errors))

    return True

if __name__ == '__main__':
    try:
        validate_config()
        print("✓ Configuration is valid")
        print(f"✓ Categories config: {CATEGORIES_CONFIG_PATH}")
        print(f"✓ Ranker model: {RANKER_MODEL}")
        if OPENAI_API_KEY:
            print(f"✓ OpenAI API Key: {'*' * 20}{OPENAI_API_KEY[-10:]}")
        else:
            print(f"⚠ OpenAI API Key not set: every rank will be the sentinel {RANK_SENTINEL}")
    except ValueError as e:
        print(f"✗ {e}")
