import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    GOOGLE_APPLICATION_CREDENTIALS = os.environ.get('GOOGLE_APPLICATION_CREDENTIALS', './firebase-service-account.json')
    FIREBASE_PROJECT_ID = os.environ.get('FIREBASE_PROJECT_ID', '')
    STUDYBITS_CACHE_PATH = os.environ.get('STUDYBITS_CACHE_PATH') or os.path.join(
        os.path.expanduser('~'), '.studybits', 'cache.db'
    )
    RECOMMENDATION_API_URL = os.environ.get('RECOMMENDATION_API_URL', 'https://study-bits-api.vercel.app')
    RECOMMENDATION_TIMEOUT = float(os.environ.get('RECOMMENDATION_TIMEOUT', 10))
    FETCH_MAX_WORKERS = int(os.environ.get('FETCH_MAX_WORKERS', 4))
    DEPENDENCY_RETRY_ATTEMPTS = int(os.environ.get('DEPENDENCY_RETRY_ATTEMPTS', 3))
    ORPHAN_OWNER_ID = os.environ.get('ORPHAN_OWNER_ID', 'TcoD2mfnDzQ6NmPQjbxzbpbUIJG3')

    @classmethod
    def as_dict(cls):
        return {key: getattr(cls, key) for key in dir(cls) if key.isupper()}
