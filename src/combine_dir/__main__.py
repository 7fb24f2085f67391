from combine_dir.cli import main

raise SystemExit(main())
