from md2slack.main import main

raise SystemExit(main())
