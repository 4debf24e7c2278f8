"""Constants for the Deputy CLI."""

# 0 waits for the browser flow until Ctrl-C.
DEFAULT_LOGIN_TIMEOUT_SECONDS = 0

MASKED_TOKEN = "****"
TOKEN_MASK_MIN_LENGTH = 8

DEPUTY_HOST_SUFFIX = "deputy.com"
