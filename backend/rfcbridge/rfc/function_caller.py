"""
Function Caller - BAPIs and other function modules beyond table reads
"""

from typing import Any, Dict, List, Optional
import structlog

from rfcbridge.core.exceptions import FunctionCallError, RemoteError, RfcBridgeException
from rfcbridge.rfc.client import FM_ROLLBACK, RfcClient
from rfcbridge.rfc.pool import RfcPool

logger = structlog.get_logger(__name__)

RETURN_TABLES = ("RETURN", "BAPIRETURN", "BAPIRET2")
ERROR_SEVERITIES = ("E", "A")  # Error, Abort


def collect_return_errors(result: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Messages with severity error or abort from a BAPI return table"""
    ret = None
    for key in RETURN_TABLES:
        if result.get(key):
            ret = result[key]
            break
    if not ret:
        return []

    messages = ret if isinstance(ret, list) else [ret]
    return [m for m in messages if (m.get("TYPE") or "").strip() in ERROR_SEVERITIES]


def _format_message(message: Dict[str, Any]) -> str:
    return "{}-{}: {}".format(
        str(message.get("ID") or "").strip(),
        str(message.get("NUMBER") or "").strip(),
        str(message.get("MESSAGE") or "").strip(),
    )


class FunctionCaller:
    """Calls function modules through the pool and checks BAPI return messages"""

    def __init__(self, pool: RfcPool):
        self.pool = pool

    async def call(
        self,
        fm_name: str,
        imports: Optional[Dict[str, Any]] = None,
        tables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Call a function module

        Args:
            fm_name: Function module name
            imports: IMPORT parameters
            tables: TABLES parameters

        Returns:
            FM result (exports and tables)

        Raises:
            RemoteError: The return table holds an error or abort message
        """
        params = {**(imports or {}), **(tables or {})}
        client = await self.pool.acquire()
        try:
            result = await client.call(fm_name, params)
            self._check_bapi_return(fm_name, result)
            return result
        except RfcBridgeException:
            raise
        except Exception as e:
            raise FunctionCallError(
                f"Call to {fm_name} failed: {e}",
                details={"function_module": fm_name, "original": str(e)}
            ) from e
        finally:
            await self.pool.release(client)

    async def call_with_commit(self, fm_name: str, imports: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Call a BAPI and commit on the same client; roll back on any failure
        """
        client = await self.pool.acquire()
        try:
            await client.begin_stateful_session()
            try:
                result = await client.call(fm_name, imports or {})
                self._check_bapi_return(fm_name, result)
            except BaseException:
                await self._rollback(client, fm_name)
                raise
            await client.end_stateful_session(commit=True)
            return result
        except RfcBridgeException:
            raise
        except Exception as e:
            raise FunctionCallError(
                f"Call to {fm_name} with commit failed: {e}",
                details={"function_module": fm_name, "original": str(e)}
            ) from e
        finally:
            if client.is_stateful:
                await client.end_stateful_session(commit=False)
            await self.pool.release(client)

    async def get_interface(self, fm_name: str) -> Dict[str, Any]:
        """
        Interface definition of a function module via RPY_FUNCTIONMODULE_READ
        """
        try:
            result = await self.call("RPY_FUNCTIONMODULE_READ", {"FUNCTIONNAME": fm_name})
        except RfcBridgeException as e:
            raise FunctionCallError(
                f"Failed to read interface for {fm_name}: {e.message}",
                details={"function_module": fm_name, "original": e.error_code}
            ) from e

        def _params(rows: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
            return [
                {"name": (p.get("PARAMETER") or "").strip(), "type": (p.get("TYP") or "").strip()}
                for p in rows or []
            ]

        imports = [
            {
                "name": (p.get("PARAMETER") or "").strip(),
                "type": (p.get("TYP") or "").strip(),
                "optional": p.get("OPTIONAL") == "X",
                "default": (p.get("DEFAULT") or "").strip(),
            }
            for p in result.get("IMPORT_PARAMETER") or []
        ]

        return {
            "name": fm_name,
            "imports": imports,
            "exports": _params(result.get("EXPORT_PARAMETER")),
            "changing": _params(result.get("CHANGING_PARAMETER")),
            "tables": _params(result.get("TABLES_PARAMETER")),
        }

    async def _rollback(self, client: RfcClient, fm_name: str):
        try:
            await client.end_stateful_session(commit=False)
        except Exception as e:
            logger.warning("Rollback failed", fm=fm_name, rollback_fm=FM_ROLLBACK, error=str(e))

    @staticmethod
    def _check_bapi_return(fm_name: str, result: Dict[str, Any]):
        errors = collect_return_errors(result)
        if errors:
            summary = "; ".join(_format_message(m) for m in errors)
            raise RemoteError(
                f"BAPI {fm_name} returned errors: {summary}",
                details={"function_module": fm_name, "bapi_errors": errors}
            )
