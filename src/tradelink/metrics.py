from prometheus_client import Counter

invitation_validations_total = Counter(
    "tradelink_invitation_validations_total",
    "Number of claim token validations, by outcome",
    ["outcome"]
)

invitation_claims_total = Counter(
    "tradelink_invitation_claims_total",
    "Number of invitation claim attempts, by outcome",
    ["outcome"]
)

invitation_migrations_total = Counter(
    "tradelink_invitation_migrations_total",
    "Number of pre-account invitations linked to a contractor account"
)

invitation_migration_failures_total = Counter(
    "tradelink_invitation_migration_failures_total",
    "Number of invitation linking sweeps that failed"
)
