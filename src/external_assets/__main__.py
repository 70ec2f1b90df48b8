from external_assets.cli import main

raise SystemExit(main())
