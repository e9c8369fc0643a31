from nemea_agent.main import main

raise SystemExit(main())
