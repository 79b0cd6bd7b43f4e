"""HTTP interface to the ledger."""

from api.app import build_services, create_app, create_production_app
from api.base import APIError, APIMeta, APIResponse, ErrorCodes
