from supabase import create_client, Client
from config import SUPABASE_CONFIG
import logging

logger = logging.getLogger(__name__)

class SupabaseInitializer:
    def __init__(self, supabase_url=None, SERVICE_ROLE_KEY=None):
        self.supabase_url = supabase_url if supabase_url else SUPABASE_CONFIG.get('url')
        self.SERVICE_ROLE_KEY = SERVICE_ROLE_KEY if SERVICE_ROLE_KEY else SUPABASE_CONFIG.get('service_key')

        if not self.supabase_url or not self.SERVICE_ROLE_KEY:
            raise RuntimeError("SUPABASE_PUBLIC_URL and SERVICE_ROLE_KEY must be configured")

        # Admins are authenticated by the API's own cookie sessions, so table and
        # storage calls use the service-role key.
        self.supabase: Client = create_client(self.supabase_url, self.SERVICE_ROLE_KEY)
        logger.info(f"Supabase client initialized with URL: {self.supabase_url}")
