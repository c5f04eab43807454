# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.


class CANSessionError(RuntimeError):
    """
    This is the root exception class for all errors raised by this library.
    The exception type is the kind of the failure; the message describes the particular case.
    Errors reported by the underlying driver are wrapped into one of the subclasses defined here
    with the original exception attached as ``__cause__``.
    """


class ValidationError(CANSessionError, ValueError):
    """
    An argument was rejected before anything was handed over to the driver.
    Validation errors are always detected synchronously and never cause side effects.
    """


class InvalidIdentifierError(ValidationError):
    """
    The identifier is outside of the range implied by its format:
    ``[0, 0x7FF]`` for standard (11-bit) identifiers, ``[0, 0x1FFFFFFF]`` for extended (29-bit) ones.
    """


class PayloadTooLongError(ValidationError):
    """
    The payload length exceeds the limit of the frame variant: 8 bytes for Classic CAN (including the DLC of
    a remote frame) and 64 bytes for CAN FD.
    """


class InvalidByteError(ValidationError):
    """
    A payload element is not an integer in ``[0, 255]``.
    """


class IncompatibleFlagsError(ValidationError):
    """
    The requested combination of frame properties cannot exist on the bus or cannot be sent by this session;
    e.g., a remote CAN FD frame, or a CAN FD frame on a Classic CAN session.
    """


class InvalidFilterError(ValidationError):
    """
    An acceptance filter is malformed, or its identifier or mask is outside of the range of its format.
    """


class InvalidFormatError(ValidationError):
    """
    A textual frame representation could not be parsed.
    """


class InvalidConfigurationError(ValidationError):
    """
    The session could not be constructed from the supplied configuration.
    """


class SocketNotOpenError(CANSessionError):
    """
    A data operation was attempted on a session that is not open.
    This check never reaches the driver.
    """


class SocketOpenError(CANSessionError):
    """
    The driver could not acquire a handle for the interface. The session remains closed.
    """


class SocketCloseError(CANSessionError):
    """
    The driver reported an error while releasing the handle.
    The session is considered closed regardless; there is nothing to retry.
    """


class DriverError(CANSessionError):
    """
    Base class for input/output errors originating from the driver.
    """


class SendError(DriverError):
    """
    The driver failed to transmit a frame.
    """


class ReceiveError(DriverError):
    """
    The driver failed to read a frame for a reason other than a timeout.
    A bus-level failure (e.g., bus-off) usually requires intervention, so this error is never retried silently.
    """


class ReceiveTimeoutError(DriverError):
    """
    No frame was received within the timeout. This is a routine condition rather than a failure;
    the listener and the frame streams treat it as "no data yet".
    """


class FilterError(DriverError):
    """
    The driver failed to install or clear the acceptance filters.
    """


class AlreadyListeningError(CANSessionError):
    """
    The listener is already active on this session. While it is active, it is the sole consumer of the
    received frames, so manual reception and frame streams are also rejected with this error.
    """


class ListeningError(CANSessionError):
    """
    The listening loop was terminated by an unexpected failure.
    """
