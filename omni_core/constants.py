# omni_core/constants.py
"""Protocol constants shared by the codec, envelope and server layers."""

import os

PROTOCOL_VERSION = 1

# Envelope protected headers
ALG_EDDSA = "EdDSA"
CONTENT_TYPE = "application/msgpack"
KEYSET_HEADER = "keyset"

# Ed25519 / identity sizes
ED25519_KEY_SIZE = 32
ADDRESS_SIZE = 28  # sha3-224 digest

# Error code namespaces
RESERVED_OMNI_ERROR_CODE = 10000

DEFAULT_MAX_MESSAGE_SIZE = int(os.getenv("OMNI_MAX_MESSAGE_SIZE", str(1024 * 1024)))
