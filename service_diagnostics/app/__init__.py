"""
Diagnostics Service package for the eSIM activation platform.

This package diagnoses eSIM activation failures for a subscription and
a free-text issue description. It provides:

- app.main: API surface for diagnosis, rule listing and health.
- app.rules: Subscription/diagnosis models and the ordered rule engine.
- app.subscriptions: HTTP client for the subscription provider.
- app.reasoner: Generative-model fallback used when no rule matches.
- app.actions: Execution of recommended remediation actions.
- app.orchestrator: The request pipeline tying the above together.

Guidelines:
- The service is stateless; subscription data is fetched per request.
- Rule evaluation is deterministic and order-sensitive.
- The caller always receives a concrete action and message.
"""
