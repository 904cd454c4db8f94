"""Error taxonomy shared by the core and its collaborators."""


class InsufficientData(ValueError):
    """Too few bars or closes for an indicator window.

    Recovered inside the signal engine and reported as a ``hold``.
    """


class InvalidConfiguration(ValueError):
    """Strategy parameters that can never produce sensible signals."""


class ExternalFetchFailure(RuntimeError):
    """Historical or live market data could not be fetched.

    Args:
        ticker: Symbol whose data was requested.
        message: Human-readable cause.
    """

    def __init__(self, ticker: str, message: str) -> None:
        super().__init__(f"{ticker}: {message}")
        self.ticker = ticker
