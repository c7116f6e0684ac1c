"""vipcli engine layer: remote command sessions with no UI dependency.

Everything the prompt loop needs to run one wp-cli command remotely lives
here, behind narrow protocols, so it can be driven by fakes in tests.

Modules
-------
machine
    Pure prompt state machine.
    - ``State``: IDLE / AWAITING_DISPATCH / STREAMING / CLOSED
    - ``PromptState``: frozen loop state (commandRunning, countSIGINT, interactive, logMode)
    - ``transition``: ``(PromptState, Event) -> (PromptState, [Effect])``

session
    - ``Session``: one remote command (id, input token, output offset)
    - ``SessionParams``: what goes in the ``cmd`` event
    - ``OutputOffsetTracker``: the only writer of ``Session.offset``

streams
    - ``ByteStream``: one direction of traffic (bytes, stream errors, end)
    - ``StreamPair``: input + output for exactly one connection (or a placeholder)

coordinator
    - ``StreamCoordinator``: binds local input/output to at most one StreamPair

dispatcher
    - ``RemoteCommandDispatcher``: registers commands with the API, lists completed ones

transport
    - ``SessionTransport``: reconnecting websocket carrying one command stream

terminal
    - ``ProcessTerminal``: raw-mode keystroke forwarding and output for the real TTY

controller
    - ``SessionController``: performs machine effects against the collaborators above

protocols
    - ``GraphQLClient``, ``CommandDispatcher``, ``Transport``, ``LocalTerminal``, ``ErrorReporter``
"""
