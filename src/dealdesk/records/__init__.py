"""Record model -- the ten collections mirrored from the remote table store.

Every record is a flat row with a server-assigned integer identity and a
creation timestamp. Associations are identity values (deal_id, quote_id, ...)
resolved by scanning snapshots, never embedded objects.
"""
