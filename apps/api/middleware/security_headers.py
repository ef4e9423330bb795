"""
Security Headers Middleware
Adds browser hardening headers; the policy allows the Razorpay checkout
script and embedding the clinic's video consultation domain.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

RAZORPAY_ORIGINS = "https://checkout.razorpay.com https://api.razorpay.com"


def build_content_security_policy(video_domain: str) -> str:
    video_origin = f"https://{video_domain}"
    return (
        "default-src 'self'; "
        f"script-src 'self' {RAZORPAY_ORIGINS} {video_origin}; "
        "style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: https:; "
        f"connect-src 'self' {RAZORPAY_ORIGINS}; "
        f"frame-src {RAZORPAY_ORIGINS} {video_origin}; "
        "frame-ancestors 'none';"
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, video_domain: str = "meet.jit.si"):
        super().__init__(app)
        self.video_domain = video_domain
        self.content_security_policy = build_content_security_policy(video_domain)

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # HTTPS only, including behind a proxy
        forwarded_proto = request.headers.get("X-Forwarded-Proto", "")
        if request.url.scheme == "https" or forwarded_proto == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["Content-Security-Policy"] = self.content_security_policy
        # Video consultations need camera and microphone inside the embedded room
        response.headers["Permissions-Policy"] = (
            f'camera=(self "https://{self.video_domain}"), '
            f'microphone=(self "https://{self.video_domain}"), '
            "geolocation=(), payment=(self)"
        )
        return response
