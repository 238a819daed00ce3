REDIS_META_KEY = "room:meta:{slug}" # room token - hash of created_at / expires_at

# **`room:meta:{token}` hash fields**
# - `token` = `{token}`
# - `created_at` = ISO timestamp (UTC)
# - `expires_at` = ISO timestamp (UTC), mirrored by the key's TTL
