from delivery.output import deliver_cli, deliver_json

__all__ = ["deliver_cli", "deliver_json"]
