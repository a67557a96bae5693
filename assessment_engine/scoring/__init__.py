"""
scoring/ - deterministic scoring layer

Modules:
    utils.py                - Decimal utilities (half-up rounding, weighted mean)
    trait_resolver.py       - DISC resolution table and classifier reply parsing
    disc_tally.py           - DISC counts, levels and profile hint
    bigfive_calculator.py   - Big Five reverse coding, factor averages and bands
    decay_aggregator.py     - Decayed rolling profile over observation episodes
    fingerprint.py          - Context fingerprint digest
"""
