# decision/scaling_policy.py


def decide_action(per_min_rate, threshold):
    """
    Decide what to do with a service given its traffic rate.

    Only ever scales down: bringing capacity back is left to an operator.

    Args:
        per_min_rate: Observed requests per minute
        threshold: Requests per minute below which the service is idle

    Returns:
        dict with keys:
            - action: "scale_down" | "noop"
            - reason: str (explanation)
    """
    if per_min_rate < threshold:
        return {
            "action": "scale_down",
            "reason": f"Traffic {per_min_rate:.2f} req/min < {threshold:.2f} req/min",
        }

    return {
        "action": "noop",
        "reason": f"Traffic {per_min_rate:.2f} req/min >= {threshold:.2f} req/min",
    }


def should_monitor_router(router_name, router_names=None):
    """
    Check a router against the allow-list.

    An empty or missing allow-list monitors every router; otherwise the
    name must match one entry exactly (case-sensitive).
    """
    if not router_names:
        return True
    return router_name in router_names


def resource_name_for_service(service_name):
    """Strip the `@provider` suffix: "whoami@docker" -> "whoami"."""
    return service_name.split("@", 1)[0]
