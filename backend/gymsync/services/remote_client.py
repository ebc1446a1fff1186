"""
Remote system of record client.
Thin httpx wrapper over the backend REST API the sync engine pushes to.
Every create carries an Idempotency-Key derived from the local id, so a push
repeated after a lost response returns the already-created record.
"""
import logging
from typing import Dict, List, Optional

import httpx

from ..core.config import settings
from ..core.exceptions import RemoteAPIError, Unreachable
from ..models.record import Collection

logger = logging.getLogger(__name__)

COLLECTION_PATHS = {
    Collection.WORKOUT_SESSIONS: "/workout-sessions",
    Collection.CUSTOM_EXERCISES: "/custom-exercises",
}


def enrich_exercise_names(data: Dict, names: Dict[str, str]) -> Dict:
    """
    Fill missing exercise names from the locally known exercise list.
    Exercises that cannot be found keep their id, which the payload falls back to.
    """
    exercises = []
    for exercise in data.get("exercises") or []:
        exercise_id = exercise.get("exercise_id")
        if not exercise.get("exercise_name"):
            if names.get(exercise_id):
                exercise = {**exercise, "exercise_name": names[exercise_id]}
            elif exercise_id:
                logger.warning("Exercise %s not in local exercise list, sending its id", exercise_id)
        exercises.append(exercise)
    return {**data, "exercises": exercises}


def build_session_payload(local_id: str, data: Dict) -> Dict:
    """
    Convert a locally stored workout session to the API format.
    Exercises without a name or without sets are dropped; raises ValueError
    if nothing valid remains.
    """
    exercises = []
    for exercise in data.get("exercises") or []:
        name = exercise.get("exercise_name") or exercise.get("exercise_id")
        sets = exercise.get("sets") or []
        if not name or not sets:
            logger.warning(
                "Dropping invalid exercise from session %s (name=%s, sets=%d)",
                local_id, name, len(sets),
            )
            continue
        exercises.append({
            "name": name,
            "templateId": None,
            "notes": None,
            "sets": [
                {
                    "setNumber": s.get("set_index", i) + 1,
                    "weight": s.get("weight") or None,
                    "reps": s.get("reps") or None,
                    "completed": bool(s.get("completed")),
                }
                for i, s in enumerate(sets)
            ],
        })

    if not exercises:
        raise ValueError("Workout has no valid exercises")

    day_index = data.get("day_index")
    return {
        "clientId": local_id,
        "userId": data.get("user_id"),
        "splitId": data.get("split_id"),
        "dayName": data.get("day_name") or "Workout",
        "weekNumber": None,
        "dayNumber": day_index + 1 if day_index is not None else None,
        "notes": data.get("notes"),
        "completedAt": data.get("completed_at"),
        "exercises": exercises,
    }


def build_custom_exercise_payload(local_id: str, data: Dict) -> Dict:
    return {
        "clientId": local_id,
        "name": data.get("name"),
        "category": data.get("category"),
        "primaryMuscles": data.get("primary_muscles") or [],
        "secondaryMuscles": data.get("secondary_muscles") or [],
        "equipment": data.get("equipment"),
        "difficulty": data.get("difficulty"),
    }


PAYLOAD_BUILDERS = {
    Collection.WORKOUT_SESSIONS: build_session_payload,
    Collection.CUSTOM_EXERCISES: build_custom_exercise_payload,
}


class RemoteClient:
    """HTTP client for the remote backend."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.BACKEND_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        self.timeout = timeout or settings.REMOTE_TIMEOUT
        self._transport = transport

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def _request(self, method: str, path: str, idempotency_key: Optional[str] = None, **kwargs):
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=self._headers(idempotency_key),
                    **kwargs,
                )
        except httpx.TransportError as exc:
            raise Unreachable(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise RemoteAPIError(
                f"API request failed: {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Pushes
    # ------------------------------------------------------------------

    async def push(self, collection: str, payload: Dict, idempotency_key: str) -> str:
        """Create a record remotely and return its database id."""
        path = COLLECTION_PATHS.get(collection)
        if path is None:
            raise ValueError(f"Collection {collection} is not syncable")
        result = await self._request("POST", path, idempotency_key=idempotency_key, json=payload)
        if not result or result.get("id") is None:
            raise RemoteAPIError(f"Remote did not return an id for {collection}")
        return str(result["id"])

    async def push_session(self, payload: Dict, idempotency_key: str) -> str:
        return await self.push(Collection.WORKOUT_SESSIONS, payload, idempotency_key)

    async def push_custom_exercise(self, payload: Dict, idempotency_key: str) -> str:
        return await self.push(Collection.CUSTOM_EXERCISES, payload, idempotency_key)

    async def update(self, collection: str, remote_id: str, payload: Dict) -> None:
        path = COLLECTION_PATHS.get(collection)
        if path is None:
            raise ValueError(f"Collection {collection} is not syncable")
        await self._request("PUT", f"{path}/{remote_id}", json=payload)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_sessions(self, user_id: str) -> List[Dict]:
        result = await self._request("GET", f"/workout-sessions/user/{user_id}")
        return result or []

    async def is_reachable(self) -> bool:
        try:
            await self._request("GET", "/health")
            return True
        except (Unreachable, RemoteAPIError) as exc:
            logger.debug("Remote health check failed: %s", exc)
            return False


remote_client = RemoteClient()
