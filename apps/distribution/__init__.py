"""
Donation distribution app.

Splits an organization's donation across the open-source packages it depends
on, either synchronously in one invocation or as a split pipeline:
scrape → weigh → distribute.

Key concepts:
- Org lock guards the non-idempotent posting of the synchronous flow
- Correlation ID ties together all artifacts and messages of a split run
- State machine: PENDING → SCRAPED → WEIGHED → DISTRIBUTED (never backwards)
- Queue messages carry only the correlation id; stages re-read their inputs
"""
