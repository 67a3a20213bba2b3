"""Dispatch Router - deterministic routing on the request's action field

Role:
- Decodes one wire message into a request dict
- Routes to the handler registered for its action
- Every handler returns a response dict carrying a 'status' of
  success | unsafe | unclear | error

Expected failures never escape as exceptions; they become error responses
so the session can keep serving.
"""

import json
import time
import logging
from typing import Dict, Any, Callable, Optional, Union

from . import classifier
from .context import SessionContext
from .daemon import DaemonService
from .errors import (
    MalformedRequest,
    BackendUnavailable,
    BackendTimeout,
    UnsafeCommand,
    UnclearCommand,
)
from ..execution.safety import confirmation_marker
from ..models.model_manager import ModelNotFoundError, ModelDisabledError


STATUS_SUCCESS = "success"
STATUS_UNSAFE = "unsafe"
STATUS_UNCLEAR = "unclear"
STATUS_ERROR = "error"

Handler = Callable[[Dict[str, Any], SessionContext], Dict[str, Any]]


def error_response(message: str, **extra) -> Dict[str, Any]:
    response = {"status": STATUS_ERROR, "message": message}
    response.update(extra)
    return response


def decode_request(raw: Union[bytes, str]) -> Dict[str, Any]:
    """Parse one wire message

    Raises:
        MalformedRequest: not UTF-8, not JSON, or not a JSON object
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        request = json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedRequest(f"Invalid JSON request: {e}")
    if not isinstance(request, dict):
        raise MalformedRequest("Request must be a JSON object")
    action = request.get("action", "interpret")
    if not isinstance(action, str):
        raise MalformedRequest("'action' must be a string")
    request["action"] = action
    return request


class DispatchRouter:
    """Routes requests to action handlers (AUTHORITATIVE)."""

    def __init__(self, service: DaemonService):
        self.service = service
        self.handlers: Dict[str, Handler] = {}

        self.register("interpret", self._handle_interpret)
        self.register("execute", self._handle_execute)
        self.register("status", self._handle_status)
        self.register("set_model", self._handle_set_model)
        self.register("get_context", self._handle_get_context)
        self.register("classify", self._handle_classify)
        self.register("chat", self._handle_chat)
        self.register("feedback", self._handle_feedback)
        self.register("model_stats", self._handle_model_stats)

    def register(self, action: str, handler: Handler):
        """Register a handler: Function(request, context) -> dict"""
        self.handlers[action] = handler
        logging.debug(f"Registered handler for action: {action}")

    def get_registered_actions(self) -> list:
        return list(self.handlers.keys())

    # ------------------------------------------------------------------

    def handle_message(self, raw: Union[bytes, str], ctx: SessionContext) -> Dict[str, Any]:
        """Decode and dispatch one wire message"""
        try:
            request = decode_request(raw)
        except MalformedRequest as e:
            logging.warning(f"Malformed request from PID {ctx.process_id}: {e}")
            return error_response(str(e))
        return self.dispatch(request, ctx)

    def dispatch(self, request: Dict[str, Any], ctx: SessionContext) -> Dict[str, Any]:
        action = request.get("action", "interpret")
        handler = self.handlers.get(action)
        if handler is None:
            logging.warning(f"Unknown action '{action}' from PID {ctx.process_id}")
            return error_response("Unknown action", action=action)

        try:
            return handler(request, ctx)
        except Exception as e:
            logging.exception(f"Handler '{action}' failed for PID {ctx.process_id}: {e}")
            return error_response(f"Failed to process request: {e}", action=action)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _command(request: Dict[str, Any]) -> Optional[str]:
        command = request.get("command")
        if not isinstance(command, str) or not command.strip():
            return None
        return command.strip()

    @staticmethod
    def _refresh(ctx: SessionContext):
        if ctx.needs_refresh():
            ctx.refresh()

    def _run(self, command: str, ctx: SessionContext, confirmed: bool = False) -> Dict[str, Any]:
        """Safety gate + execution (or confirmation marker)"""
        verdict = self.service.gate.check(command)
        if not verdict.is_safe:
            logging.warning(f"Blocked command from PID {ctx.process_id}: {command} (pattern: {verdict.pattern})")
            return {
                "status": STATUS_UNSAFE,
                "message": "Command blocked by safety gate",
                "blocked_pattern": verdict.pattern,
            }

        ctx.add_command(command)

        if self.service.config.confirmation_required and not confirmed:
            return {
                "status": STATUS_SUCCESS,
                "confirmation_required": True,
                "execution_result": confirmation_marker(command),
                "exit_code": 1,
            }

        logging.info(f"Executing command for PID {ctx.process_id}: {command}")
        result = self.service.executor.execute(command, cwd=ctx.current_directory)
        response = {"status": STATUS_SUCCESS if result.exit_code == 0 else STATUS_ERROR}
        response.update(result.to_dict())
        return response

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_interpret(self, request: Dict[str, Any], ctx: SessionContext) -> Dict[str, Any]:
        command = self._command(request)
        if command is None:
            return error_response("No command to interpret")

        self._refresh(ctx)
        registry = self.service.registry
        profile, task_type, switched = registry.select_model(command)
        summary = ctx.summarize()

        logging.info(f"Interpreting command from PID {ctx.process_id} with {profile.name} ({task_type}): {command}")

        start = time.monotonic()
        try:
            interpreted = self.service.backend.interpret(command, summary, profile)
        except UnsafeCommand as e:
            registry.update_stats(profile.name, True, time.monotonic() - start)
            return {"status": STATUS_UNSAFE, "message": str(e), "model_used": profile.name}
        except UnclearCommand as e:
            registry.update_stats(profile.name, False, time.monotonic() - start)
            return {"status": STATUS_UNCLEAR, "message": str(e), "model_used": profile.name}
        except (BackendTimeout, BackendUnavailable) as e:
            registry.update_stats(profile.name, False, time.monotonic() - start)
            logging.error(f"Backend failure for PID {ctx.process_id} (interpret): {e}")
            return error_response("Failed to interpret command", detail=str(e), model_used=profile.name)

        registry.update_stats(profile.name, True, time.monotonic() - start)

        response: Dict[str, Any] = {
            "status": STATUS_SUCCESS,
            "interpreted_command": interpreted,
            "model_used": profile.name,
            "task_type": task_type,
            "model_switched": switched,
        }
        suggestion = self.service.feedback.suggest(command)
        if suggestion is not None:
            response["suggested_command"] = suggestion

        verdict = self.service.gate.check(interpreted)
        if not verdict.is_safe:
            logging.warning(f"Interpreted command blocked for PID {ctx.process_id}: {interpreted} (pattern: {verdict.pattern})")
            response["status"] = STATUS_UNSAFE
            response["message"] = "Command blocked by safety gate"
            response["blocked_pattern"] = verdict.pattern
            return response

        if self.service.config.confirmation_required:
            response["confirmation_required"] = True
            return response

        outcome = self._run(interpreted, ctx)
        response["execution_result"] = outcome.get("execution_result", "")
        response["exit_code"] = outcome.get("exit_code", -1)
        return response

    def _handle_execute(self, request: Dict[str, Any], ctx: SessionContext) -> Dict[str, Any]:
        command = self._command(request)
        if command is None:
            return error_response("No command to execute")
        confirmed = request.get("confirmed") is True
        return self._run(command, ctx, confirmed=confirmed)

    def _handle_status(self, request: Dict[str, Any], ctx: SessionContext) -> Dict[str, Any]:
        backend = self.service.backend
        config = self.service.config
        try:
            backend_up = backend.check_available()
            backend_models = backend.list_models() if backend_up else []
        except Exception as e:
            logging.error(f"Backend status check failed: {e}")
            backend_up, backend_models = False, []

        return {
            "status": STATUS_SUCCESS,
            "daemon_status": "running",
            "backend_status": "running" if backend_up else "not available",
            "current_model": self.service.registry.current_model.name,
            "available_models": self.service.registry.list_models(),
            "backend_models": backend_models,
            "safety_mode": config.safety_mode,
            "safety_bypass": config.safety_bypass,
            "confirmation_required": config.confirmation_required,
            "auto_switch_enabled": self.service.registry.auto_switch_enabled,
            "active_sessions": self.service.active_sessions(),
        }

    def _handle_set_model(self, request: Dict[str, Any], ctx: SessionContext) -> Dict[str, Any]:
        model = request.get("model")
        if not isinstance(model, str) or not model:
            return error_response("No model specified")
        try:
            self.service.registry.set_model(model)
        except ModelNotFoundError:
            return error_response("Model not found", model=model)
        except ModelDisabledError:
            return error_response("Model is disabled", model=model)
        logging.info(f"Model changed to: {model} (PID {ctx.process_id})")
        return {"status": STATUS_SUCCESS, "message": "Model changed successfully", "current_model": model}

    def _handle_get_context(self, request: Dict[str, Any], ctx: SessionContext) -> Dict[str, Any]:
        self._refresh(ctx)
        return {"status": STATUS_SUCCESS, "context": ctx.to_dict()}

    def _handle_classify(self, request: Dict[str, Any], ctx: SessionContext) -> Dict[str, Any]:
        command = request.get("command") or ""
        if not isinstance(command, str):
            return error_response("'command' must be a string")
        logging.info(f"Classifying input from PID {ctx.process_id}: {command}")
        return {
            "status": STATUS_SUCCESS,
            "classification": classifier.classify_input(command),
            "task_type": classifier.classify_task_type(command),
        }

    def _handle_chat(self, request: Dict[str, Any], ctx: SessionContext) -> Dict[str, Any]:
        message = self._command(request)
        if message is None:
            return error_response("No message for chat")

        self._refresh(ctx)
        profile = self.service.registry.current_model
        logging.info(f"Chat request from PID {ctx.process_id}: {message}")

        start = time.monotonic()
        try:
            reply = self.service.backend.chat(message, ctx.summarize(), profile)
        except (BackendTimeout, BackendUnavailable) as e:
            self.service.registry.update_stats(profile.name, False, time.monotonic() - start)
            logging.error(f"Backend failure for PID {ctx.process_id} (chat): {e}")
            return error_response("Failed to get chat response", detail=str(e))

        self.service.registry.update_stats(profile.name, True, time.monotonic() - start)
        return {"status": STATUS_SUCCESS, "chat_response": reply, "model_used": profile.name}

    def _handle_feedback(self, request: Dict[str, Any], ctx: SessionContext) -> Dict[str, Any]:
        natural = self._command(request)
        interpreted = request.get("interpreted_command")
        accepted = request.get("accepted")
        if natural is None or not isinstance(interpreted, str) or not interpreted:
            return error_response("Feedback needs 'command' and 'interpreted_command'")
        if not isinstance(accepted, bool):
            return error_response("'accepted' must be true or false")

        model = request.get("model")
        if not isinstance(model, str) or not model:
            model = self.service.registry.current_model.name

        self.service.feedback.record(natural, interpreted, accepted, model)
        accepted_count, rejected_count = self.service.feedback.model_stats(model)
        return {
            "status": STATUS_SUCCESS,
            "model": model,
            "model_feedback": {"accepted": accepted_count, "rejected": rejected_count},
        }

    def _handle_model_stats(self, request: Dict[str, Any], ctx: SessionContext) -> Dict[str, Any]:
        stats = self.service.registry.get_stats()
        for summary in stats["models_summary"]:
            accepted, rejected = self.service.feedback.model_stats(summary["name"])
            summary["feedback"] = {"accepted": accepted, "rejected": rejected}
        return {"status": STATUS_SUCCESS, "model_stats": stats}
