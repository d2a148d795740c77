REDIS_USERS_KEY = "room:users:{slug}" # room code - set of connection IDs
REDIS_CONN_KEY = "conn:{connection_id}" # connection id - connection metadata
REDIS_TOKEN_KEY = "auth:token:{token}" # opaque session token issued by the auth service

# **Example `conn:{id}` hash fields**
# - `room_id` = room code the connection joined
# - `joined_at` = ISO timestamp
#
# `auth:token:{token}` is written (with its own TTL) by the external auth/balance
# service. The relay only checks that the key exists.
