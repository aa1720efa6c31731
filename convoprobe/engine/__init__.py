"""ConvoProbe conversation engine.

Modular, protocol-based architecture:
- types.py: Core data types + protocol interfaces
- llm_client.py: Model-agnostic LLM client (LiteLLM)
- persona.py: Simulated-user prompt construction
- persona_simulator.py: LLM-powered user simulation
- transcript.py: Transcript with tool-call pairing checks
- scenario_runner.py: Core multi-turn orchestrator
"""
