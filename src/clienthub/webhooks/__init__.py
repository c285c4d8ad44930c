"""Outbound webhooks -- configuration, event queueing, debounced dispatch and delivery.

Business operations call WebhookEmitter.trigger_webhooks(); rows land in the
per-tenant webhook_events_queue as ``pending`` and DispatchTrigger schedules a
WebhookDispatcher run that claims, signs, delivers and reschedules them.
"""
