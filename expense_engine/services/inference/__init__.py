"""Inference request correlation over a single asynchronous channel."""

from expense_engine.services.inference.channel import BridgeInferenceChannel, InferenceChannel
from expense_engine.services.inference.correlator import PendingRequest, RequestCorrelator
from expense_engine.services.inference.responses import (
    extract_payload,
    parse_response,
    validate_expense_data,
    validate_insights_data,
)

__all__ = [
    "BridgeInferenceChannel",
    "InferenceChannel",
    "PendingRequest",
    "RequestCorrelator",
    "extract_payload",
    "parse_response",
    "validate_expense_data",
    "validate_insights_data",
]
