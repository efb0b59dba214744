"""
CLIENT PACKAGE
==============

Python client for the Zeno server:

  api_client - ZenoClient: HTTP calls to the server endpoints.
  consumer   - StreamConsumer: accumulates the chat event stream into the answer.
  branching  - MessageTree: parent -> children index and active path.
  storage    - Local JSON snapshot storage; remote store interface.
  store      - ConversationStore: conversations, branches, preferences.
  session    - ChatSession: send / regenerate / edit with retries.
"""
