from mcauth.cli import main

raise SystemExit(main())
