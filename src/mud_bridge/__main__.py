from mud_bridge.client.launcher import main

raise SystemExit(main())
