"""Temporal client factory.

Connects to a local Temporal server or to Temporal Cloud depending on the
credentials present in the environment.
"""

import os
from pathlib import Path
from typing import Union

from dotenv import load_dotenv
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from temporalio.client import Client
from temporalio.service import TLSConfig


LOCAL_ENDPOINT = "localhost:7233"


async def get_temporal_client() -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables:
    - TEMPORAL_ENDPOINT: Server endpoint (default "localhost:7233")
    - TEMPORAL_NAMESPACE: Namespace (default "default")
    - TEMPORAL_API_KEY: Cloud API key; when set the connection uses TLS
    - TEMPORAL_CERT_PATH / TEMPORAL_KEY_PATH: Client certificate and key for mTLS

    Returns:
        Connected Temporal client
    """
    endpoint = os.getenv("TEMPORAL_ENDPOINT") or LOCAL_ENDPOINT
    namespace = os.getenv("TEMPORAL_NAMESPACE", "default")
    api_key = os.getenv("TEMPORAL_API_KEY")
    cert_path = os.getenv("TEMPORAL_CERT_PATH")
    key_path = os.getenv("TEMPORAL_KEY_PATH")

    tls: Union[bool, TLSConfig] = bool(api_key)
    if cert_path and key_path:
        tls = TLSConfig(
            client_cert=Path(cert_path).read_bytes(),
            client_private_key=Path(key_path).read_bytes(),
        )

    return await Client.connect(
        endpoint,
        namespace=namespace,
        tls=tls,
        api_key=api_key,
    )
