class WeatherHubError(Exception):
    pass


class ProviderError(WeatherHubError):
    """A single provider could not deliver usable data."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class TransportError(ProviderError):
    pass


class ParseError(ProviderError):
    pass


class AllProvidersFailedError(WeatherHubError):
    def __init__(self, kind: str, errors: dict):
        details = "; ".join(f"{provider}: {error}" for provider, error in errors.items())
        super().__init__(f"all {kind} providers failed ({details})" if details else f"all {kind} providers failed")
        self.kind = kind
        self.errors = errors


class StoreError(WeatherHubError):
    pass


class ResolutionError(WeatherHubError):
    pass


class GeocodeError(ResolutionError):
    pass


class NoResultsFound(GeocodeError):
    pass
