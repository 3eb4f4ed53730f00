"""
Prometheus metrics for the payment client.

Counters for challenges, payments, retries and verification failures,
rendered in Prometheus text format. One collector belongs to each payment
context; there is no process-global instance.
"""

import time
from dataclasses import dataclass, field


@dataclass
class MetricsCollector:
    """Collects and exposes payment metrics for Prometheus."""

    # Protocol metrics
    requests_total: int = 0
    challenges_received: int = 0
    retries_total: int = 0
    verification_failures: int = 0
    timeouts_total: int = 0

    # Payment metrics
    payments_total: int = 0
    payments_success: int = 0
    payments_failed: int = 0
    payments_total_minor_units: int = 0

    start_time: float = field(default_factory=time.time)

    def record_request(self):
        """Record a protocol invocation."""
        self.requests_total += 1

    def record_challenge(self):
        """Record a 402 challenge."""
        self.challenges_received += 1

    def record_payment(self, amount: int, success: bool):
        """Record a payment attempt."""
        self.payments_total += 1
        if success:
            self.payments_success += 1
            self.payments_total_minor_units += amount
        else:
            self.payments_failed += 1

    def record_retry(self):
        """Record a retried request carrying payment evidence."""
        self.retries_total += 1

    def record_verification_failure(self):
        """Record an exhausted retry budget."""
        self.verification_failures += 1

    def record_timeout(self):
        """Record an invocation that ran past its deadline."""
        self.timeouts_total += 1

    def get_prometheus_metrics(self) -> str:
        """
        Get all metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string
        """
        uptime_seconds = time.time() - self.start_time

        metrics = [
            "# HELP agentpay_uptime_seconds Application uptime in seconds",
            "# TYPE agentpay_uptime_seconds gauge",
            f"agentpay_uptime_seconds {uptime_seconds:.2f}",
            "",
            "# HELP agentpay_requests_total Total number of paid-fetch invocations",
            "# TYPE agentpay_requests_total counter",
            f"agentpay_requests_total {self.requests_total}",
            "",
            "# HELP agentpay_challenges_total Total number of 402 challenges received",
            "# TYPE agentpay_challenges_total counter",
            f"agentpay_challenges_total {self.challenges_received}",
            "",
            "# HELP agentpay_payments_total Total number of payments attempted",
            "# TYPE agentpay_payments_total counter",
            f"agentpay_payments_total {self.payments_total}",
            "",
            "# HELP agentpay_payments_success_total Total payments submitted to the ledger",
            "# TYPE agentpay_payments_success_total counter",
            f"agentpay_payments_success_total {self.payments_success}",
            "",
            "# HELP agentpay_payments_failed_total Total payments that could not be submitted",
            "# TYPE agentpay_payments_failed_total counter",
            f"agentpay_payments_failed_total {self.payments_failed}",
            "",
            "# HELP agentpay_payments_minor_units_total Total value submitted in minor units",
            "# TYPE agentpay_payments_minor_units_total counter",
            f"agentpay_payments_minor_units_total {self.payments_total_minor_units}",
            "",
            "# HELP agentpay_retries_total Total retried requests carrying payment evidence",
            "# TYPE agentpay_retries_total counter",
            f"agentpay_retries_total {self.retries_total}",
            "",
            "# HELP agentpay_verification_failures_total Total invocations that exhausted their retries",
            "# TYPE agentpay_verification_failures_total counter",
            f"agentpay_verification_failures_total {self.verification_failures}",
            "",
            "# HELP agentpay_timeouts_total Total invocations that ran past their deadline",
            "# TYPE agentpay_timeouts_total counter",
            f"agentpay_timeouts_total {self.timeouts_total}",
            "",
        ]

        return "\n".join(metrics)
