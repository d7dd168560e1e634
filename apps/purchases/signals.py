"""
Signals for the purchases app.

`balance_event_recorded` fires after a ledger write commits. The receiver
feeds it into the in-process balance sync so open café sessions see
deposits and balance edits made elsewhere.
"""
from django.dispatch import Signal, receiver


# Sent with event=BalanceEventInfo
balance_event_recorded = Signal()


@receiver(balance_event_recorded, dispatch_uid='purchases.forward_balance_event')
def forward_balance_event(sender, event, **kwargs):
    from apps.purchases.services.balance_sync import handle_balance_event

    handle_balance_event(event)
