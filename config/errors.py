class ConfigurationError(ValueError):
    """Raised at synthesis time when configuration cannot be resolved"""
