class StorageError(Exception):
    """Raised by storage backends when a read or write fails."""


class GradingError(Exception):
    status_code = 500
    default_detail = 'Grading failed.'

    def __init__(self, detail=None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(GradingError):
    status_code = 404
    default_detail = 'Not found.'


class DependencyFailure(GradingError):
    status_code = 500
    default_detail = 'Failed to fetch questions.'


class PersistenceFailure(GradingError):
    status_code = 500
    default_detail = 'Failed to save score.'
