"""AI features built on the OpenAI chat API.

## Components

- `client`: `LLMClient` with retries and JSON reply parsing
- `suggestions`: advice for each calendar event
- `chat`: wellness chat with cycle and symptom context
- `planner`: weekly overload detection and move proposals
- `moves`: rescheduling by email and reply handling
"""
