"""Client management -- advisory clients, risk scoring and activity metrics.

Provides the ClientModel table, Pydantic schemas, ClientRepository for async
CRUD and ClientService, which computes per-client metrics from meetings and
tasks and emits client.* webhook events.
"""
