# Configuration, read once from the environment (.env beside this file)
import os
from dotenv import load_dotenv

env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), '.env')
load_dotenv(env_path)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


SUPABASE_CONFIG = {
    'url': os.getenv('SUPABASE_PUBLIC_URL'),
    'service_key': os.getenv('SERVICE_ROLE_KEY'),
    'publications_bucket_name': os.getenv('PUBLICATIONS_BUCKET', 'publications'),
}

# Flask
FLASK_CONFIG = {
    'host': os.getenv('FLASK_HOST', '0.0.0.0'),
    'port': int(os.getenv('FLASK_PORT', 5000)),
    'debug': _env_flag('FLASK_DEBUG', 'False'),
    'env': os.getenv('APP_ENV', 'development'),
}

IS_PRODUCTION = FLASK_CONFIG['env'] == 'production'

# Session cookie; cross-origin deployments need SameSite=None which browsers only accept with Secure
SESSION_CONFIG = {
    'cookie_name': os.getenv('SESSION_COOKIE_NAME', 'pubrepo_sid'),
    'ttl_seconds': int(os.getenv('SESSION_TTL_SECONDS', 24 * 60 * 60)),
    'secure': IS_PRODUCTION,
    'samesite': 'None' if IS_PRODUCTION else 'Lax',
}

CORS_CONFIG = {
    'origins': [o.strip() for o in os.getenv('CORS_ORIGINS', '*').split(',') if o.strip()],
    'supports_credentials': True,
}

UPLOAD_CONFIG = {
    'staging_dir': os.getenv('UPLOAD_STAGING_DIR', os.path.join(os.path.dirname(os.path.abspath(__file__)), 'uploads')),
    'max_content_length': int(os.getenv('UPLOAD_MAX_BYTES', 20 * 1024 * 1024)),
    'allowed_extensions': {'pdf'},
    'file_field': 'file',
}

PAGINATION_CONFIG = {
    'default_page': 1,
    'default_limit': 10,
    'max_limit': 100,
    # window size for unpaged reads; at most the PostgREST max-rows setting
    'fetch_batch': int(os.getenv('FETCH_BATCH_SIZE', 1000)),
}

SEARCH_CONFIG = {
    'text_weights': {
        'title': 3,
        'keywords': 2,
        'abstract': 1,
        'journal': 1,
    },
    'related_limit': 5,
    'year_summary_titles': 10,
}

DEPARTMENT_CODES = ['CSE', 'ECE', 'ME', 'CE', 'EE', 'IT']

LOG_CONFIG = {
    'level': os.getenv('LOG_LEVEL', 'INFO'),
    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
}
