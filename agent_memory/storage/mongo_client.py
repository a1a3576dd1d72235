from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING, MongoClient


class MongoStorageClient:
    """
    MongoDB client for the memory engine.
    Handles memory records, sessions and their message log, agent memory
    configs, and extraction jobs. Documents are the models' ``to_dict`` output.
    """

    def __init__(
        self,
        uri: str = "mongodb://localhost:27017",
        db_name: str = "agent_memory",
        server_selection_timeout_ms: int = 5000,
    ):
        """
        Initialize the MongoDB client.

        Args:
            uri: MongoDB connection URI
            db_name: Database name
            server_selection_timeout_ms: How long to wait for a reachable server
        """
        self.client = MongoClient(
            uri, serverSelectionTimeoutMS=server_selection_timeout_ms
        )
        self.db = self.client[db_name]

        # Collections
        self.memories = self.db.memories
        self.sessions = self.db.sessions
        self.messages = self.db.messages
        self.agent_configs = self.db.agent_memory_config
        self.jobs = self.db.memory_extraction_jobs

        self._setup_indexes()

    def _setup_indexes(self) -> None:
        """Create necessary indexes for performance and uniqueness."""
        # Memory records: by id, and by owner key for list/similarity scans
        self.memories.create_index("id", unique=True)
        self.memories.create_index(
            [("user_id", ASCENDING), ("agent_id", ASCENDING), ("state", ASCENDING)]
        )

        # Sessions and message log
        self.sessions.create_index("session_id", unique=True)
        self.messages.create_index(
            [("session_id", ASCENDING), ("created_at", ASCENDING)]
        )

        # Agent configs
        self.agent_configs.create_index("agent_id", unique=True)

        # Extraction jobs
        self.jobs.create_index("job_id", unique=True)
        self.jobs.create_index([("session_id", ASCENDING), ("status", ASCENDING)])

    @staticmethod
    def _strip(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if doc is None:
            return None
        return {k: v for k, v in doc.items() if k != "_id"}

    # --- Memory Record Operations ---

    def upsert_memory(self, doc: Dict[str, Any]) -> None:
        """Add or replace a memory record."""
        self.memories.replace_one({"id": doc["id"]}, doc, upsert=True)

    def find_memory(self, memory_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Retrieve a memory record by ID, scoped to its owner."""
        return self._strip(self.memories.find_one({"id": memory_id, "user_id": user_id}))

    def find_memories(
        self, user_id: str, agent_id: str, include_expired: bool = False
    ) -> List[Dict[str, Any]]:
        """Retrieve the memory records of one (user, agent) key."""
        query: Dict[str, Any] = {"user_id": user_id, "agent_id": agent_id}
        if not include_expired:
            query["state"] = {"$ne": "expired"}
        return [self._strip(doc) for doc in self.memories.find(query)]

    def delete_memory(self, memory_id: str, user_id: str) -> bool:
        """Delete one owned record. False when absent or owned by someone else."""
        result = self.memories.delete_one({"id": memory_id, "user_id": user_id})
        return result.deleted_count == 1

    def delete_memories(self, memory_ids: List[str]) -> int:
        """Physically delete records by ID."""
        if not memory_ids:
            return 0
        result = self.memories.delete_many({"id": {"$in": memory_ids}})
        return result.deleted_count

    def active_keys(self) -> List[Tuple[str, str]]:
        """Every (user_id, agent_id) pair that still has non-expired records."""
        pipeline = [
            {"$match": {"state": {"$ne": "expired"}}},
            {"$group": {"_id": {"user_id": "$user_id", "agent_id": "$agent_id"}}},
        ]
        return [
            (row["_id"]["user_id"], row["_id"]["agent_id"])
            for row in self.memories.aggregate(pipeline)
        ]

    # --- Session Operations ---

    def add_session(self, doc: Dict[str, Any]) -> None:
        """Add or update a session ownership record."""
        self.sessions.replace_one({"session_id": doc["session_id"]}, doc, upsert=True)

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Retrieve a session by ID."""
        return self._strip(self.sessions.find_one({"session_id": session_id}))

    def add_message(self, session_id: str, doc: Dict[str, Any]) -> None:
        """Append a message to a session's log."""
        self.messages.insert_one({**doc, "session_id": session_id})

    def get_messages(
        self, session_id: str, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Retrieve the most recent messages of a session, oldest first."""
        cursor = self.messages.find({"session_id": session_id}).sort(
            [("created_at", DESCENDING), ("_id", DESCENDING)]
        )
        if limit:
            cursor = cursor.limit(limit)
        docs = [self._strip(doc) for doc in cursor]
        docs.reverse()
        return docs

    # --- Agent Config Operations ---

    def save_agent_config(self, doc: Dict[str, Any]) -> None:
        """Save or update an agent memory config."""
        self.agent_configs.replace_one({"agent_id": doc["agent_id"]}, doc, upsert=True)

    def get_agent_config(self, agent_id: str) -> Optional[Dict[str, Any]]:
        """Retrieve an agent memory config by agent ID."""
        return self._strip(self.agent_configs.find_one({"agent_id": agent_id}))

    # --- Extraction Job Operations ---

    def save_job(self, doc: Dict[str, Any]) -> None:
        """Add or update an extraction job."""
        self.jobs.replace_one({"job_id": doc["job_id"]}, doc, upsert=True)

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Retrieve an extraction job by ID."""
        return self._strip(self.jobs.find_one({"job_id": job_id}))

    def find_jobs(
        self, session_id: str, statuses: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        """Retrieve the jobs of a session, optionally filtered by status."""
        query: Dict[str, Any] = {"session_id": session_id}
        if statuses:
            query["status"] = {"$in": statuses}
        return [self._strip(doc) for doc in self.jobs.find(query)]

    def clear(self) -> None:
        """Clear all collections (for testing/reset)."""
        self.memories.delete_many({})
        self.sessions.delete_many({})
        self.messages.delete_many({})
        self.agent_configs.delete_many({})
        self.jobs.delete_many({})
