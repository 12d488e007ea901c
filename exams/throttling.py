from rest_framework.throttling import UserRateThrottle


class SubmissionRateThrottle(UserRateThrottle):
    """Strict rate limit for exam submissions to prevent abuse."""
    scope = 'submission'
    rate = '10/minute'


class GradingRateThrottle(UserRateThrottle):
    """Grading re-reads the whole question set; keep repeated calls bounded."""
    scope = 'grading'
    rate = '30/minute'
