from shared.domain.errors import DomainError, ErrorKind


class ReportJobNotFound(DomainError):
    kind = ErrorKind.NOT_FOUND
