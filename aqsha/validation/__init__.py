"""Request validation package."""

from aqsha.validation.validator import (
    RequestValidator,
    StatisticsParams,
    parse_chat_request,
    parse_criteria,
    parse_report_request,
    parse_statistics_params,
    parse_transaction_create,
    validate_criteria,
    validate_date_range,
    validate_message,
)

__all__ = [
    "RequestValidator",
    "StatisticsParams",
    "parse_chat_request",
    "parse_criteria",
    "parse_report_request",
    "parse_statistics_params",
    "parse_transaction_create",
    "validate_criteria",
    "validate_date_range",
    "validate_message",
]
