class ConfigurationError(ValueError):
    """Run-fatal misconfiguration detected before or during orchestration."""


class AuthenticationError(ConfigurationError):
    pass


class ClassificationCallError(RuntimeError):
    """The oracle call for a whole batch failed."""


class GitHubAPIError(RuntimeError):
    pass
