"""
Basic import checks for the server and client packages.
"""

def test_basic():
    """Basic test that always passes."""
    assert True

def test_agent_imports():
    """Test that the agent package can be imported without errors."""
    try:
        import agent
        assert hasattr(agent, 'AgentSession')
        assert callable(agent.AgentSession)
    except ImportError as e:
        assert False, f"Failed to import agent: {e}"

def test_web_imports():
    """Test that the web app factory can be imported without errors."""
    try:
        import web
        assert callable(web.create_app)
        assert web.app is not None
    except ImportError as e:
        assert False, f"Failed to import web: {e}"

def test_client_imports():
    """Test that the client package can be imported without errors."""
    try:
        import client
        assert hasattr(client, 'ChatClient')
        assert hasattr(client, 'HotReloadClient')
    except ImportError as e:
        assert False, f"Failed to import client: {e}"
