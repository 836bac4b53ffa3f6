REDIS_ROOM_INDEX_KEY = "rooms:index" # set of live room ids
REDIS_META_KEY = "room:meta:{slug}" # room id - room metadata hash
REDIS_PARTICIPANTS_KEY = "room:participants:{slug}" # room id - list of participant json blobs, join order

# **Example `room:meta:{id}` hash fields**
# - `id` = `{roomId}`
# - `name` = display name
# - `capacity` = integer
# - `created_at` = ISO timestamp
# - `password_hash` = salted sha256 (optional)
# - `owner_peer_id` = peer id of the first participant admitted (optional)
# - `owner_connection_id` = connection id of that participant, checked on kick (optional)

# **Example `room:participants:{id}` entry**
# - `{"connection_id": "...", "peer_id": "...", "display_name": "..."}`
