class BudgetError(Exception):
    """Base class for failures surfaced to callers as {code, message}"""
    code = 'BUDGET_ERROR'
    status_code = 400

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def as_dict(self):
        data = {'code': self.code, 'message': self.message}
        if self.errors:
            data['errors'] = self.errors
        return data


class NotFound(BudgetError):
    """Node, parent or lookup record is missing"""
    code = 'NOT_FOUND'
    status_code = 404


class ValidationError(BudgetError):
    """Malformed payload, invalid state transition or unusable lookup code"""
    code = 'VALIDATION_ERROR'
    status_code = 400


class Unauthorized(BudgetError):
    """Actor lacks the role required for the action"""
    code = 'UNAUTHORIZED'
    status_code = 403
