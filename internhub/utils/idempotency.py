"""
Générateur de clés d'idempotence.

Une clé est l'empreinte déterministe d'une opération logique:
- même scope + mêmes paramètres (ordre indifférent) => même clé
- le scope partitionne l'espace des clés (deux scopes ne se rencontrent jamais)
- SHA-256 sur une sérialisation JSON canonique (sort_keys, séparateurs compacts)
"""
import hashlib
import json
from typing import Any, Mapping

SCOPE_PAYMENT = "payment"
SCOPE_INTERNSHIP_ENROLLMENT = "internship-enrollment"


def generate_key(scope: str, params: Mapping[str, Any]) -> str:
    if not scope:
        raise ValueError("scope is required")
    raw = json.dumps(
        {"scope": scope, "params": dict(params or {})},
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    ).encode("utf-8")
    return f"{scope}:{hashlib.sha256(raw).hexdigest()}"
