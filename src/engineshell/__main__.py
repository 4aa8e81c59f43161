from engineshell.cli import main

raise SystemExit(main())
