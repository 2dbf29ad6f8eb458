# backend/ernamdb/serve.py
"""
Run the training API under uvicorn: `python -m ernamdb.serve`.

HOST, PORT, RELOAD and LOG_LEVEL tune the server. TLS is enabled when any
of the SSL_* variables below is set.
"""

import os
from typing import Dict

import uvicorn

_SSL_ENV = {
    "SSL_CERTFILE": "ssl_certfile",
    "SSL_KEYFILE": "ssl_keyfile",
    "SSL_CA_CERTS": "ssl_ca_certs",
    "SSL_KEYFILE_PASSWORD": "ssl_keyfile_password",
}


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _ssl_options() -> Dict[str, str]:
    return {kwarg: os.environ[env] for env, kwarg in _SSL_ENV.items() if os.getenv(env)}


def main() -> None:
    uvicorn.run(
        "ernamdb.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=_flag("RELOAD"),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        proxy_headers=True,
        forwarded_allow_ips=os.getenv("FORWARDED_ALLOW_IPS", "*"),
        **_ssl_options(),
    )


if __name__ == "__main__":
    main()
