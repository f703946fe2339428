from mcp_relay.cli import main

raise SystemExit(main())
