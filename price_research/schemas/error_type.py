from enum import Enum


class ErrorType(str, Enum):
    '''
    Structured classification of failures raised by the engine.
    Compliance findings are report data, never exceptions, so they have no member here.

    INPUT_ERROR: caller input does not meet the operation's requirements.
    NOT_FOUND: the referenced project / item / source / catalog entry does not exist.
    BUSINESS_RULE_ERROR: the operation violates a domain rule (duplicate source, forbidden transition).
    CONCURRENCY_ERROR: concurrent writers kept invalidating the operation; safe to retry later.
    DATABASE_ERROR: the store failed mid-transaction; nothing was applied.
    '''
    INPUT_ERROR = "INPUT_ERROR"
    NOT_FOUND = "NOT_FOUND"

    BUSINESS_RULE_ERROR = "BUSINESS_RULE_ERROR"

    CONCURRENCY_ERROR = "CONCURRENCY_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
