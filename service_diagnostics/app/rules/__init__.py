"""
Diagnostic rules package.

Defines the subscription and diagnosis models and the rule engine that
maps a subscription's state plus the user's wording to a diagnosis.

Modules of interest:
- models: Subscription records, enums, diagnosis results, API models.
- engine: Ordered first-match evaluation and elapsed-time helpers.
"""
