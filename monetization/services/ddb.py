from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from monetization.core.settings import S


def user_pk(email: str) -> str:
    return f"USER#{email}"


def creator_pk(email: str) -> str:
    return f"CREATOR#{email}"


def is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def ddb_get(table: Any, pk: str, sk: str) -> Optional[Dict[str, Any]]:
    resp = table.get_item(Key={"pk": pk, "sk": sk})
    return resp.get("Item")


def ddb_put(table: Any, item: Dict[str, Any], *, condition_expression: Optional[str] = None) -> None:
    kwargs: Dict[str, Any] = {"Item": item}
    if condition_expression:
        kwargs["ConditionExpression"] = condition_expression
    table.put_item(**kwargs)


def ddb_put_new(table: Any, item: Dict[str, Any]) -> bool:
    """Insert ``item`` only if its key is unused. Returns False on a key collision."""
    try:
        ddb_put(table, item, condition_expression="attribute_not_exists(pk)")
        return True
    except ClientError as exc:
        if is_conditional_failure(exc):
            return False
        raise


def ddb_del(table: Any, pk: str, sk: str) -> None:
    table.delete_item(Key={"pk": pk, "sk": sk})


def ddb_query_pk(table: Any, pk: str, *, sk_prefix: Optional[str] = None) -> List[Dict[str, Any]]:
    kwargs: Dict[str, Any] = {
        "KeyConditionExpression": "pk = :pk",
        "ExpressionAttributeValues": {":pk": pk},
    }
    if sk_prefix:
        kwargs["KeyConditionExpression"] = "pk = :pk AND begins_with(sk, :p)"
        kwargs["ExpressionAttributeValues"][":p"] = sk_prefix
    items: List[Dict[str, Any]] = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        last = resp.get("LastEvaluatedKey")
        if not last:
            return items
        kwargs["ExclusiveStartKey"] = last


def ddb_update(
    table: Any,
    pk: str,
    sk: str,
    expr: str,
    values: Dict[str, Any],
    names: Optional[Dict[str, str]] = None,
    *,
    condition_expression: Optional[str] = None,
    return_values: Optional[str] = None,
) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "Key": {"pk": pk, "sk": sk},
        "UpdateExpression": expr,
        "ExpressionAttributeValues": values,
    }
    if names:
        kwargs["ExpressionAttributeNames"] = names
    if condition_expression:
        kwargs["ConditionExpression"] = condition_expression
    if return_values:
        kwargs["ReturnValues"] = return_values
    resp = table.update_item(**kwargs)
    return (resp or {}).get("Attributes") or {}


def _increment_expression(delta: Dict[str, int], ts: int) -> Tuple[str, Dict[str, Any], Dict[str, str]]:
    sets = []
    values: Dict[str, Any] = {":z": 0, ":t": ts}
    names: Dict[str, str] = {}

    i = 0
    for key, value in delta.items():
        if value == 0:
            continue
        i += 1
        nk = f"#k{i}"
        dv = f":d{i}"
        names[nk] = key
        values[dv] = int(value)
        sets.append(f"{nk} = if_not_exists({nk}, :z) + {dv}")

    names["#u"] = "updated_at"
    sets.append("#u = :t")
    return "SET " + ", ".join(sets), values, names


def increment_fields(
    table: Any,
    pk: str,
    sk: str,
    delta: Dict[str, int],
    *,
    ts: int,
    condition_expression: Optional[str] = None,
) -> Dict[str, Any]:
    """Atomically add ``delta`` to numeric attributes, creating them at zero."""
    expr, values, names = _increment_expression(delta, ts)
    return ddb_update(
        table,
        pk,
        sk,
        expr,
        values,
        names=names,
        condition_expression=condition_expression,
        return_values="ALL_NEW",
    )


# Transactions go through the resource's own client, which accepts plain
# Python values like the Table API does.

def tx_put_new(table: Any, item: Dict[str, Any]) -> Dict[str, Any]:
    return {"Put": {"TableName": table.name, "Item": item, "ConditionExpression": "attribute_not_exists(pk)"}}


def tx_increment(table: Any, pk: str, sk: str, delta: Dict[str, int], *, ts: int) -> Dict[str, Any]:
    expr, values, names = _increment_expression(delta, ts)
    return {
        "Update": {
            "TableName": table.name,
            "Key": {"pk": pk, "sk": sk},
            "UpdateExpression": expr,
            "ExpressionAttributeValues": values,
            "ExpressionAttributeNames": names,
        }
    }


def transact_write(table: Any, items: List[Dict[str, Any]]) -> None:
    table.meta.client.transact_write_items(TransactItems=items)


def failed_conditions(exc: ClientError) -> List[int]:
    """Indexes of the transaction items whose condition check failed."""
    if exc.response.get("Error", {}).get("Code") != "TransactionCanceledException":
        return []
    reasons = exc.response.get("CancellationReasons") or []
    return [i for i, reason in enumerate(reasons) if (reason or {}).get("Code") == "ConditionalCheckFailed"]


def put_new_with_increment(
    table: Any,
    marker: Dict[str, Any],
    sk: str,
    delta: Dict[str, int],
    *,
    ts: int,
) -> bool:
    """Write ``marker`` and apply ``delta`` to (marker pk, ``sk``) in one transaction.

    Returns False, with nothing written, when the marker already exists. Any
    other failure leaves both items untouched, so the caller can simply retry.
    """
    try:
        transact_write(
            table,
            [tx_put_new(table, marker), tx_increment(table, marker["pk"], sk, delta, ts=ts)],
        )
        return True
    except ClientError as exc:
        if 0 in failed_conditions(exc):
            return False
        raise


def with_ttl(item: Dict[str, Any], ttl_epoch: int) -> Dict[str, Any]:
    item[S.ddb_ttl_attr] = int(ttl_epoch)
    return item
