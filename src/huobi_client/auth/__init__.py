"""Request authentication."""

from .signer import ApiCredentials, HuobiAuthenticationProvider, sign

__all__ = ['ApiCredentials', 'HuobiAuthenticationProvider', 'sign']
