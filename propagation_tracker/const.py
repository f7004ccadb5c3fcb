from __future__ import annotations

from typing import Final

# Quiet periods before a debounced request is issued, in seconds.
DEFAULT_VALIDATION_DELAY: Final = 0.8
DEFAULT_PREDICTION_DELAY: Final = 1.0

DEFAULT_REQUEST_TIMEOUT: Final = 10.0
DEFAULT_MAX_RETRIES: Final = 3
DEFAULT_BASE_URL: Final = "http://localhost:8000/api"

RETRYABLE_STATUSES: Final = frozenset({429, 500, 502, 503, 504})

PREDICTION_KEY: Final = "prediction"
CODE_FIELD: Final = "codigo"

MESSAGE_CHECKING: Final = "checking"
MESSAGE_VALIDATION_FAILED: Final = "validation failed"
MESSAGE_CODE_NEW: Final = "new code"
MESSAGE_CODE_DUPLICATE_ALLOWED: Final = "code exists (duplicates allowed for germinations)"
MESSAGE_CODE_TAKEN: Final = "code already registered"

CONF_BASE_URL = "base_url"
CONF_TOKEN = "token"
CONF_REQUEST_TIMEOUT = "request_timeout"
CONF_MAX_RETRIES = "max_retries"
CONF_VALIDATION_DELAY = "validation_delay"
CONF_PREDICTION_DELAY = "prediction_delay"

ENV_BASE_URL = "PROPAGATION_TRACKER_API_URL"
ENV_TOKEN = "PROPAGATION_TRACKER_TOKEN"

# Germination lifecycle
STATUS_INITIAL = "INICIAL"
STATUS_IN_PROGRESS = "EN_PROCESO"
STATUS_FINISHED = "FINALIZADO"

# Pollination lifecycle
STATUS_ENTERED = "INGRESADO"
STATUS_READY = "LISTA"
STATUS_READY_ALT = "LISTO"

GERMINATION_STATUSES: Final = (STATUS_INITIAL, STATUS_IN_PROGRESS, STATUS_FINISHED)
POLLINATION_STATUSES: Final = (STATUS_ENTERED, STATUS_IN_PROGRESS, STATUS_READY, STATUS_READY_ALT)
FINALIZED_STATUSES: Final = frozenset({STATUS_FINISHED, STATUS_READY, STATUS_READY_ALT})

# Payload keys understood by the status change endpoints.
PAYLOAD_STATUS = "estado"
PAYLOAD_GERMINATION_DATE = "fecha_germinacion"
PAYLOAD_MATURATION_DATE = "fechamad"

# Form fields feeding the prediction tuple, in PredictionInput order.
GERMINATION_PREDICTION_FIELDS: Final = ("especie", "genero", "fecha_siembra", "clima")
POLLINATION_PREDICTION_FIELDS: Final = ("especie", "genero", "fecha_polinizacion", "clima")
