"""
WebSocket bridge between a UI client and one avatar session.

Pushes a SnapshotMessage after every observable change and accepts
send / stop / start / input_mode commands.
"""

import json
import asyncio
from typing import Optional, Set
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from errors import AvatarSessionError
from models import (
    ErrorMessage,
    SnapshotMessage,
    SessionSnapshot,
    SendCommand,
    StopCommand,
    StartCommand,
    InputModeCommand,
    UIMessageType,
)
from core import AvatarSessionController, SessionManager
from utils import SessionLogger

COMMANDS = {
    UIMessageType.SEND.value: SendCommand,
    UIMessageType.STOP.value: StopCommand,
    UIMessageType.START.value: StartCommand,
    UIMessageType.INPUT_MODE.value: InputModeCommand,
}


class SessionWebSocketHandler:
    """
    Handles one UI WebSocket connection for a session.

    Provides bidirectional communication:
    - Receives: send, stop, start and input_mode commands
    - Sends: snapshots and errors
    """

    def __init__(
        self,
        websocket: WebSocket,
        controller: AvatarSessionController,
        session_manager: SessionManager,
    ):
        self.websocket = websocket
        self.controller = controller
        self.session_manager = session_manager
        self.session_key = controller.session_key
        self.logger = SessionLogger(self.session_key)

        self.is_connected = False
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._sender: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._unsubscribe = None

    async def handle_connection(self):
        """Main handler for WebSocket connection lifecycle."""
        try:
            await self.websocket.accept()
            self.is_connected = True
            self.logger.info("UI WebSocket connected")

            self._sender = asyncio.create_task(self._send_loop())
            self._unsubscribe = self.controller.subscribe(self._on_snapshot)
            self._on_snapshot(self.controller.snapshot())

            await self._message_loop()

        except WebSocketDisconnect:
            self.logger.info("UI WebSocket disconnected by client")

        except Exception as e:
            self.logger.error(f"UI WebSocket error: {e}")
            await self._send_error("internal_error", str(e), recoverable=False)

        finally:
            self.is_connected = False
            await self.cleanup()

    async def _message_loop(self):
        """Main message receiving loop."""
        while self.is_connected:
            try:
                message_raw = await self.websocket.receive_text()
                data = json.loads(message_raw)
                await self._handle_message(data)

            except WebSocketDisconnect:
                break

            except json.JSONDecodeError as e:
                self.logger.warning(f"Invalid JSON received: {e}")
                await self._send_error("invalid_json", str(e))

            except ValidationError as e:
                self.logger.warning(f"Invalid command: {e}")
                await self._send_error("invalid_command", str(e))

    async def _handle_message(self, data):
        message_type = data.get("type") if isinstance(data, dict) else None
        command_model = COMMANDS.get(message_type)
        if command_model is None:
            self.logger.warning(f"Unknown message type: {message_type}")
            await self._send_error("unknown_message_type", f"Unknown message type: {message_type}")
            return

        command = command_model.model_validate(data)

        if isinstance(command, SendCommand):
            # Sends run concurrently so the loop keeps accepting stop
            self._spawn(self._handle_send(command))
        elif isinstance(command, StopCommand):
            await self.controller.stop()
        elif isinstance(command, StartCommand):
            self.session_manager.start_session(self.session_key)
        elif isinstance(command, InputModeCommand):
            self.controller.set_input_mode(command.mode)

    async def _handle_send(self, command: SendCommand):
        try:
            await self.controller.send(command.text, command.task_type)
        except AvatarSessionError as e:
            await self._send_error(e.code.value, e.message, recoverable=e.recoverable)

    def _on_snapshot(self, snapshot: SessionSnapshot):
        if self.is_connected:
            self._outbox.put_nowait(SnapshotMessage(session_key=self.session_key, snapshot=snapshot))

    async def _send_loop(self):
        while True:
            message = await self._outbox.get()
            await self._send_message(message.model_dump_json())

    async def _send_error(self, code: str, message: str, recoverable: bool = True):
        error = ErrorMessage(
            session_key=self.session_key,
            code=code,
            message=message,
            recoverable=recoverable,
        )
        await self._send_message(error.model_dump_json())

    async def _send_message(self, payload: str):
        if not self.is_connected:
            return

        try:
            await self.websocket.send_text(payload)
        except Exception as e:
            self.logger.error(f"Error sending message: {e}")

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def cleanup(self):
        """Detach from the controller. The session itself keeps running."""
        self.is_connected = False

        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

        tasks = list(self._pending)
        if self._sender:
            tasks.append(self._sender)
            self._sender = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self.logger.info("UI WebSocket handler cleaned up")
