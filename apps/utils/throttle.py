from rest_framework.throttling import UserRateThrottle, AnonRateThrottle


class CheckoutRateThrottle(AnonRateThrottle):
    """
    Order submissions per client IP / user (guest checkout is allowed).
    Scope: 'checkout' (Configured in settings)
    """
    scope = 'checkout'

    def get_cache_key(self, request, view):
        if request.user and request.user.is_authenticated:
            ident = request.user.pk
        else:
            ident = self.get_ident(request)
        return self.cache_format % {'scope': self.scope, 'ident': ident}


class SustainedRateThrottle(UserRateThrottle):
    """
    General API usage.
    """
    scope = 'user'
