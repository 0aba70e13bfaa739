from functools import lru_cache
import os

from dotenv import load_dotenv
from elasticsearch import Elasticsearch
import urllib3

load_dotenv()


@lru_cache(maxsize=1)
def get_es_client() -> Elasticsearch:
    """Process-wide client, created on first use."""
    verify_certs = os.getenv("ES_VERIFY_CERTS", "false").lower() == "true"
    if not verify_certs:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    username = os.getenv("ES_USERNAME")
    basic_auth = (username, os.getenv("ES_PASSWORD")) if username else None

    return Elasticsearch(
        os.getenv("ES_HOST", "http://localhost:9200"),
        basic_auth=basic_auth,
        verify_certs=verify_certs,
    )
