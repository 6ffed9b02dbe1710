from delivery.output import deliver_cli

__all__ = ["deliver_cli"]
