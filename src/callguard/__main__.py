from callguard.demo import main

raise SystemExit(main())
