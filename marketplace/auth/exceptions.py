class FederationError(Exception):
    """Base exception for failures of the sign-in flow"""
    pass


class TokenExchangeError(FederationError):
    """The identity provider did not return a usable token set"""
    pass


class InvalidClaimsError(FederationError):
    """Required claims or tokens are missing from the token set"""
    pass


class UnknownIdentityProviderError(FederationError):
    def __init__(self, tag: str):
        super().__init__(f"Unknown identity provider: '{tag}'")
        self.tag = tag


class AccountDeactivatedError(FederationError):
    """The account was deactivated by an administrator"""
    pass


class AccountResolutionError(FederationError):
    pass


class SessionProvisioningError(FederationError):
    pass
