from django.apps import AppConfig


class DisputesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.disputes"
    label = "disputes"

    def ready(self) -> None:
        from modules.disputes.events import DisputeOpened, DisputeStatusChanged
        from modules.disputes.handlers import (
            dispute_opened_handler,
            dispute_status_changed_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(DisputeOpened, dispute_opened_handler)
        event_bus.subscribe(DisputeStatusChanged, dispute_status_changed_handler)
